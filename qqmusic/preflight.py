"""Startup Preflight Check"""
import shutil
from importlib.metadata import PackageNotFoundError, version

from rich.console import Console

from .api import check_cookie
from .config import APP_VERSION, PLAYER_BIN, PROBE_BIN
from .settings import CredentialStore

console = Console()

_CORE_DEPS = ("httpx", "rich", "python-dotenv")
_WEB_DEPS = ("starlette", "uvicorn")


async def run_preflight(store: CredentialStore) -> bool:
    """
    Run all startup checks. Print results.
    Returns True if playback is possible; a missing or rejected cookie is a
    warning only, since it can be fixed from inside the app.
    """
    console.print(f"\n  [bold]♪  QQ Music v{APP_VERSION}[/bold] — preflight check\n")

    checks = [
        ("Python deps", _check_python_deps, True),
        ("Web deps", _check_web_deps, False),
        ("Audio player", _check_player, True),
        ("Cookie", lambda: _check_cookie(store), False),
    ]

    results = []
    for i, (label, fn, required) in enumerate(checks, 1):
        ok, msg, fix = await fn()
        results.append((ok, required, label, fix))
        icon = "[green]✓[/green]" if ok else ("[red]✗[/red]" if required else "[yellow]![/yellow]")
        dots = "." * max(30 - len(label), 3)
        status = f"[green]{msg}[/green]" if ok else f"[red]{msg}[/red]" if required else f"[yellow]{msg}[/yellow]"
        console.print(f"  [{i}/{len(checks)}] {label} {dots} {icon} {status}")

    failures = [(label, fix, required) for ok, required, label, fix in results if not ok and fix]
    if failures:
        console.print("")
        for label, fix, _ in failures:
            console.print(f"  [yellow]Fix for {label}:[/yellow]")
            for line in fix.strip().splitlines():
                console.print(f"    {line}")
            console.print("")

    console.print("")
    return all(ok for ok, required, _, _ in results if required)


async def _check_python_deps() -> tuple[bool, str, str]:
    return _check_distributions(_CORE_DEPS, "Run: pip install -e .")


async def _check_web_deps() -> tuple[bool, str, str]:
    return _check_distributions(_WEB_DEPS, "Only needed for --web. Run: pip install -e .")


def _check_distributions(names: tuple[str, ...], fix: str) -> tuple[bool, str, str]:
    """Look up installed versions by distribution name, without importing."""
    missing = []
    versions = []
    for name in names:
        try:
            versions.append(f"{name} {version(name)}")
        except PackageNotFoundError:
            missing.append(name)
    if missing:
        return False, f"missing: {', '.join(missing)}", fix
    return True, ", ".join(versions), ""


async def _check_player() -> tuple[bool, str, str]:
    missing = [b for b in (PLAYER_BIN, PROBE_BIN) if shutil.which(b) is None]
    if missing:
        return False, f"not found: {', '.join(missing)}", (
            "Install FFmpeg (provides ffplay and ffprobe):\n"
            "  brew install ffmpeg      # macOS\n"
            "  sudo apt install ffmpeg  # Debian/Ubuntu\n"
            "Or point PLAYER_BIN / PROBE_BIN at them in .env"
        )
    return True, f"{PLAYER_BIN} + {PROBE_BIN}", ""


async def _check_cookie(store: CredentialStore) -> tuple[bool, str, str]:
    cookie = store.get()
    fix = (
        "1. Open y.qq.com and log in\n"
        "2. Open developer tools → Network, reload the page\n"
        "3. Copy the Cookie header of any request\n"
        "4. In the app run: cookie <paste>"
    )
    if not cookie:
        return False, "not configured", fix
    if not await check_cookie(cookie):
        return False, "rejected or QQ Music unreachable", fix
    source = "env" if store.from_env else "settings"
    return True, f"ok ({source})", ""
