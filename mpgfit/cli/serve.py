# mpgfit/cli/serve.py

import argparse

import uvicorn

from mpgfit.config import DEFAULT_PORT, LOG_LEVEL
from mpgfit.logging_config import setup_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the mpgfit demo page via FastAPI.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser.parse_args()


def main():
    args = parse_args()
    setup_logging(args.log_level)

    uvicorn.run(
        "mpgfit.serve:app",
        host=args.host,
        port=args.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
