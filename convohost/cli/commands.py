"""
CLI 命令模块 - convohost 的所有命令行命令定义。

本模块使用 Typer 框架定义 convohost 的 CLI 命令体系：
- init：初始化配置文件和本地存储目录
- status：查看配置、存储后端和索引概况
- sessions：会话记录管理（列举、查看、删除）
- index：会话索引管理（列举、新建、touch）

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）
"""

from datetime import datetime
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from convohost import __logo__, __version__

app = typer.Typer(
    name="convohost",
    help=f"{__logo__} convohost - conversation session storage",
    no_args_is_help=True,
)

console = Console()

_CONFIG_PATH: Path | None = None  # --config 指定的配置文件路径


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} convohost v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show convohost runtime logs"),
):
    """convohost CLI 根命令回调。处理全局选项（--version、--config、--logs）。"""
    global _CONFIG_PATH
    _CONFIG_PATH = config
    if logs:
        logger.enable("convohost")
    else:
        logger.disable("convohost")


def _load_config():
    from convohost.config.loader import load_config
    return load_config(_CONFIG_PATH)


def _services():
    """按当前配置装配会话服务；配置错误直接退出。"""
    from convohost.errors import ConvohostError
    from convohost.session.factory import build_services

    try:
        return build_services(_load_config())
    except ConvohostError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _fmt_time(dt: datetime | None) -> str:
    return dt.astimezone().strftime("%Y-%m-%d %H:%M") if dt else ""


# ============================================================================
# Init / Status
# ============================================================================


@app.command()
def init():
    """
    初始化 convohost 配置和本地存储目录。

    1. 在 ~/.convohost/ 下创建默认配置文件 config.json（或 --config 指定的路径）
    2. 使用本地后端时创建存储根目录
    """
    from convohost.config.loader import get_config_path, save_config
    from convohost.config.schema import Config
    from convohost.utils.helpers import ensure_dir

    config_path = _CONFIG_PATH or get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config, config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    if config.storage.backend == "local":
        ensure_dir(config.storage.local_path)
        console.print(f"[green]✓[/green] Created storage at {config.storage.local_path}")

    console.print(f"\n{__logo__} convohost is ready!")


@app.command()
def status():
    """显示配置文件、存储后端和会话索引的概况。"""
    from convohost.config.loader import get_config_path

    config_path = _CONFIG_PATH or get_config_path()
    config = _load_config()

    console.print(f"{__logo__} convohost Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Backend: {config.storage.backend}")
    if config.storage.backend == "local":
        path = config.storage.local_path
        console.print(f"Storage: {path} {'[green]✓[/green]' if path.exists() else '[red]✗[/red]'}")
    else:
        console.print(f"Storage: s3://{config.storage.s3.bucket}/{config.storage.s3.prefix}")
    console.print(f"App: {config.sessions.app_name}")

    services = _services()
    descriptors = services.index.all_sessions()
    console.print(f"Indexed sessions: {len(descriptors)}")

    counts: dict[str, int] = {}
    for d in descriptors:
        counts[d.connector] = counts.get(d.connector, 0) + 1
    for name in config.connectors.enabled:
        console.print(f"{name}: [green]✓[/green] ({counts.pop(name, 0)} sessions)")
    for name, count in sorted(counts.items()):
        console.print(f"{name}: [dim]not enabled[/dim] ({count} sessions)")


# ============================================================================
# Session Commands
# ============================================================================

sessions_app = typer.Typer(help="Manage stored sessions")
app.add_typer(sessions_app, name="sessions")


@sessions_app.command("list")
def sessions_list(
    user: str = typer.Option(None, "--user", "-u", help="Only sessions of this user (e.g. 'telegram:42')"),
):
    """
    列出会话记录。

    以表格形式展示会话 ID、用户、事件数和最后更新时间，最近更新的排在前面。
    """
    services = _services()
    handles = services.store.list(_load_config().sessions.app_name, user)

    if not handles:
        console.print("No sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("User")
    table.add_column("Events", justify="right")
    table.add_column("Updated")

    for h in sorted(handles, key=lambda h: h.last_update_time, reverse=True):
        table.add_row(h.id, h.user_id, str(len(h.events)), _fmt_time(h.last_update_time))

    console.print(table)


@sessions_app.command("show")
def sessions_show(
    user: str = typer.Argument(..., help="Session owner (e.g. 'telegram:42')"),
    session_id: str = typer.Argument(..., help="Session ID"),
    recent: int = typer.Option(0, "--recent", "-n", help="Only the N most recent events"),
    after: str = typer.Option(None, "--after", help="Only events at or after this time (ISO format)"),
):
    """显示一个会话的状态和事件。"""
    from convohost.errors import ConvohostError
    from convohost.utils.helpers import one_line, parse_timestamp

    try:
        after_dt = parse_timestamp(after)
    except ValueError:
        raise typer.BadParameter(f"invalid ISO timestamp: {after}", param_hint="--after")

    services = _services()
    try:
        handle = services.store.get(
            _load_config().sessions.app_name,
            user,
            session_id,
            num_recent_events=recent,
            after=after_dt,
        )
    except ConvohostError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[cyan]{handle.id}[/cyan] ({handle.user_id})")
    console.print(f"Created: {_fmt_time(handle.created_at)}  Updated: {_fmt_time(handle.last_update_time)}")

    state = handle.state.to_dict()
    if state:
        console.print("\nState:")
        for key, value in sorted(state.items()):
            console.print(f"  {key} = {value!r}")

    table = Table(title="Events")
    table.add_column("Time")
    table.add_column("Author")
    table.add_column("Text")
    for event in handle.events:
        table.add_row(_fmt_time(event.timestamp), event.author, one_line(event.text(), 60))
    console.print(table)


@sessions_app.command("delete")
def sessions_delete(
    user: str = typer.Argument(..., help="Session owner (e.g. 'telegram:42')"),
    session_id: str = typer.Argument(..., help="Session ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """删除一个会话记录，并把它从会话索引中移除。"""
    from convohost.errors import ConvohostError

    if not yes and not typer.confirm(f"Delete session {session_id}?"):
        raise typer.Exit()

    services = _services()
    connector, _, raw_user = user.partition(":")
    try:
        if raw_user:
            services.router.delete(connector, raw_user, session_id)
        else:
            services.store.delete(_load_config().sessions.app_name, user, session_id)
    except ConvohostError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Deleted session {session_id}")


# ============================================================================
# Index Commands
# ============================================================================

index_app = typer.Typer(help="Manage the session index")
app.add_typer(index_app, name="index")


@index_app.command("list")
def index_list(
    connector: str = typer.Option(None, "--connector", help="Only this connector"),
    user: str = typer.Option(None, "--user", "-u", help="Only this connector user ID"),
):
    """列出会话索引中的条目，最近活跃的排在前面。"""
    services = _services()
    if connector and user:
        descriptors = services.index.list_user_sessions(connector, user)
    else:
        descriptors = [
            d for d in services.index.all_sessions()
            if (not connector or d.connector == connector) and (not user or d.user_id == user)
        ]

    if not descriptors:
        console.print("No indexed sessions.")
        return

    table = Table(title="Session Index")
    table.add_column("ID", style="cyan")
    table.add_column("Connector")
    table.add_column("User")
    table.add_column("Channel")
    table.add_column("Last Active")

    for d in descriptors:
        table.add_row(d.session_id, d.connector, d.user_id, d.channel_id, _fmt_time(d.last_active))

    console.print(table)


@index_app.command("new")
def index_new(
    connector: str = typer.Option(..., "--connector", help="Connector name (e.g. 'telegram')"),
    user: str = typer.Option(..., "--user", "-u", help="Connector user ID"),
    channel: str = typer.Option("", "--channel", help="Channel / chat ID"),
):
    """为用户新建一个会话（等同于渠道中的 /new 命令）。"""
    from convohost.bus.events import InboundMessage

    services = _services()
    handle = services.router.start_new(
        InboundMessage(channel=connector, sender_id=user, chat_id=channel, content="/new")
    )
    console.print(f"[green]✓[/green] Created session {handle.id}")


@index_app.command("touch")
def index_touch(
    session_id: str = typer.Argument(..., help="Session ID"),
):
    """把一个会话标记为最近活跃。"""
    from convohost.errors import SessionNotFoundError

    services = _services()
    try:
        services.index.update_last_active(session_id)
    except SessionNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Touched session {session_id}")


if __name__ == "__main__":
    app()
