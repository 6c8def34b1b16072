"""``codex serve``: run the FastAPI backend with uvicorn."""
from __future__ import annotations

from shared.runtime_settings import load_runtime_settings


def register(subparsers) -> None:
    settings = load_runtime_settings()
    p = subparsers.add_parser("serve", help="Run the API server")
    p.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    p.add_argument("--port", type=int, default=settings.port, help=f"Port (default: {settings.port})")
    p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")
    p.set_defaults(func=run)


def run(args) -> int:
    import uvicorn

    print(f"\n  Campaign Codex API on http://{args.host}:{args.port} (docs at /docs)\n")
    uvicorn.run("backend.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0
