import typer
from rich.console import Console

serve_app = typer.Typer(help="Start servers.")
console = Console()


@serve_app.command("api")
def api(
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Start the FastAPI REST API server."""
    import uvicorn

    from tagstream.api.app import create_app

    app = create_app()
    console.print(f"[green]Starting API server on {host}:{port}[/green]")
    uvicorn.run(app, host=host, port=port)


@serve_app.command("mcp")
def mcp(
    transport: str = "stdio",
    dry_run: bool = False,
) -> None:
    """Start the MCP server."""
    from tagstream.bootstrap import create_session
    from tagstream.config import Settings
    from tagstream.mcp.server import create_mcp_server

    session = create_session(Settings.from_env(), dry_run=dry_run)
    server = create_mcp_server(session)
    console.print(f"[green]Starting MCP server (transport: {transport})[/green]")
    server.run(transport=transport)  # type: ignore[arg-type]
