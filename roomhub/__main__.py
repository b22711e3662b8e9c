import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    # Bind only to localhost by default. Use a reverse proxy to expose externally.
    uvicorn.run("roomhub.main:app", host=os.environ.get("HOST", "127.0.0.1"), port=port)
