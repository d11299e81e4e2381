"""Single-port server: FastAPI API plus the built web client, if present."""
import os
from pathlib import Path

import uvicorn
from fastapi import Request
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from coincast.api.app import create_app

WEB_DIR = Path(os.environ.get("COINCAST_WEB_DIR", Path(__file__).parent / "web" / "dist"))

app = create_app(use_lifespan=True)

if (WEB_DIR / "assets").is_dir():
    app.mount("/assets", StaticFiles(directory=WEB_DIR / "assets"), name="assets")


# SPA fallback: all non-API, non-asset routes serve index.html
@app.get("/{full_path:path}")
async def spa_fallback(request: Request, full_path: str):
    file_path = (WEB_DIR / full_path).resolve()
    if full_path and file_path.is_relative_to(WEB_DIR.resolve()) and file_path.is_file():
        return FileResponse(file_path)
    return FileResponse(
        WEB_DIR / "index.html",
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
