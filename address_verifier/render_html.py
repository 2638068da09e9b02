"""
HTML surfaces for a ReportView: the interactive screen view and the print view.

Both come from one Jinja2 template; print mode drops the controls, the live
map tiles stay but interaction is off, and the browser print dialog opens
on load.
"""

from __future__ import annotations

from jinja2 import Environment, PackageLoader, select_autoescape

from .report import ReportView

_env = Environment(
    loader=PackageLoader("address_verifier", "templates"),
    autoescape=select_autoescape(["html", "j2"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

# Same tiles the Leaflet map used in the browser client
TILE_URL = "https://mt1.google.com/vt/lyrs=m&x={x}&y={y}&z={z}&scale=2"


def render_html(view: ReportView, print_mode: bool = False, back_url: str | None = None) -> str:
    template = _env.get_template("report.html.j2")
    return template.render(
        view=view,
        print_mode=print_mode,
        back_url=back_url,
        tile_url=TILE_URL,
    )
