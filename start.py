# start.py
import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        workers=1,
        loop="asyncio",
        timeout_keep_alive=75,  # keep WebSocket clients from reconnecting too often
        limit_concurrency=200,
        limit_max_requests=5000,
        backlog=2048,
        # local https, certificates generated with mkcert
        # ssl_keyfile="localhost.key",
        # ssl_certfile="localhost.crt",
    )
