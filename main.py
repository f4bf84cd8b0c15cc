"""StoryQuest launcher. Serves the API with uvicorn."""

import argparse
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")


def main():
    parser = argparse.ArgumentParser(description="StoryQuest server")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Saves, autosaves and config.json (default: ./data)")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("BACKEND_PORT", "13013")))
    parser.add_argument("--reload", action="store_true",
                        help="Restart on source changes")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "info"))
    args = parser.parse_args()

    # backend.app reads the data dir at import time, in this process or the reloader's
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    print(f"StoryQuest API on http://localhost:{args.port}/api")
    uvicorn.run(
        "backend.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=[str(ROOT / "storyquest"), str(ROOT / "backend")] if args.reload else None,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
