from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "agent_templates"

_TEMPLATES = {
    "linux": "agent_linux.sh.j2",
    "darwin": "agent_darwin.sh.j2",
    "windows": "agent_windows.ps1.j2",
}
MODES = ("onetime", "install")

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


@dataclass(frozen=True)
class ScriptData:
    token: str
    server_url: str
    email: str
    mode: str
    machine_id: str


def detect_os(user_agent: str | None) -> str:
    ua = (user_agent or "").lower()
    if "windows" in ua or "powershell" in ua:
        return "windows"
    if "darwin" in ua or "mac" in ua:
        return "darwin"
    # curl and wget without a platform hint land here too.
    return "linux"


def normalize_os(os_type: str | None, user_agent: str | None = None) -> str:
    if os_type:
        os_type = os_type.lower()
        return os_type if os_type in _TEMPLATES else "linux"
    return detect_os(user_agent)


def normalize_mode(mode: str | None) -> str:
    return mode if mode in MODES else "onetime"


def script_filename(os_type: str) -> str:
    return "boxcheckr-agent.ps1" if os_type == "windows" else "boxcheckr-agent.sh"


def script_media_type(os_type: str) -> str:
    return "text/plain; charset=utf-8" if os_type == "windows" else "text/x-shellscript; charset=utf-8"


def _single_line(value: str) -> str:
    # Values land in script comments and string literals.
    return value.replace("\r", " ").replace("\n", " ")


def render_script(os_type: str, data: ScriptData) -> str:
    template = _env.get_template(_TEMPLATES.get(os_type, _TEMPLATES["linux"]))
    return template.render(
        token=data.token,
        server_url=data.server_url,
        email=_single_line(data.email),
        mode=data.mode,
        machine_id=data.machine_id,
    )
