"""
Entry point for the site and the subscription lifecycle worker.

  python main.py            # worker loop (default)
  python main.py once       # one reminder + expiry cycle, then exit
  python main.py web        # serve the site with uvicorn
"""
import argparse
import asyncio
import os

from dotenv import load_dotenv


def _parse_args():
    parser = argparse.ArgumentParser(description="Run the site or the lifecycle worker.")
    parser.add_argument("command", nargs="?", default="worker", choices=["worker", "once", "web"])
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    return parser.parse_args()


if __name__ == "__main__":
    load_dotenv(override=True)
    args = _parse_args()

    if args.command == "web":
        import uvicorn

        uvicorn.run("app.api:app", host=args.host, port=args.port)
    elif args.command == "once":
        from worker.main import run_once

        print(asyncio.run(run_once()))
    else:
        from worker.main import main as worker_main

        asyncio.run(worker_main())
