"""
convohost 模块入口点 - 支持通过 `python -m convohost` 方式启动

启动链路：
python -m convohost → __main__.py → cli/commands.py 中的 Typer app
"""

from convohost.cli.commands import app

if __name__ == "__main__":
    app()
