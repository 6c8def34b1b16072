"""Entry point for ``python -m codex <command>``.

Commands:
    setup      create data dirs, apply migrations, seed default templates
    serve      run the FastAPI backend with uvicorn
    models     show the effective LLM provider/model configuration
    doctor     check packages, database and LLM provider reachability
"""
from codex.cli import main

if __name__ == "__main__":
    main()
