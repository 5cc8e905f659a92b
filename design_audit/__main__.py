"""Entrypoint: ``python -m design_audit`` serves the API with uvicorn."""

import uvicorn

from design_audit.config import API_HOST, API_PORT


def main() -> None:
    uvicorn.run("app.main:app", host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
