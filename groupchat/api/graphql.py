import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from groupchat.core.dependencies import get_current_user
from groupchat.db.database import get_db
from groupchat.graphql.schema import schema
from groupchat.models.user import User
from groupchat.services.media_service import default_storage
from groupchat.websocket.manager import manager

logger = logging.getLogger(__name__)
router = APIRouter()


def _place_upload(operations: dict, path: str, upload) -> None:
    """Put a file part at a dotted path such as ``variables.input.groupImage``"""
    parts = path.split(".")
    target = operations
    for part in parts[:-1]:
        target = target[int(part)] if isinstance(target, list) else target[part]
    last = parts[-1]
    if isinstance(target, list):
        target[int(last)] = upload
    else:
        target[last] = upload


async def _read_operation(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        try:
            operations = json.loads(form["operations"])
            file_map = json.loads(form.get("map") or "{}")
            for key, paths in file_map.items():
                upload = form[key]
                for path in paths:
                    _place_upload(operations, path, upload)
        except (KeyError, IndexError, ValueError, TypeError) as e:
            raise HTTPException(400, detail=f"Invalid multipart GraphQL request: {e}")
        return operations

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(400, detail="Request body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(400, detail="Batched GraphQL requests are not supported")
    return body


@router.post("/graphql")
async def graphql_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    GraphQL entry point

    Body (json):
        - query / variables / operationName
    Body (multipart/form-data):
        - operations: the json body above
        - map: {"<part>": ["variables.input.groupImage"]}
        - <part>: the file
    """
    operation = await _read_operation(request)
    query = operation.get("query")
    if not query:
        raise HTTPException(400, detail="Missing GraphQL query")

    context = {
        "db": db,
        "user": current_user,
        "notifier": manager,
        "storage": default_storage,
    }
    result = await schema.execute_async(
        query,
        variable_values=operation.get("variables"),
        operation_name=operation.get("operationName"),
        context_value=context,
    )

    response = {"data": result.data}
    if result.errors:
        for error in result.errors:
            if error.original_error is not None:
                logger.error(f"GraphQL resolver failed: {error.original_error!r}")
        response["errors"] = [error.formatted for error in result.errors]

    return JSONResponse(response, status_code=200 if result.data is not None else 400)
