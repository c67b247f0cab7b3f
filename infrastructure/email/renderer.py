"""Jinja2 rendering of the OTP email bodies.

Templates live in ``templates/emails`` at the repository root. Autoescaping is
on, so the admin OTP's symbol characters render literally.
"""

import os
from datetime import datetime, timezone
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "templates",
    "emails",
)


class OtpEmailRenderer:
    def __init__(self, app_name: str, template_dir: str = _DEFAULT_TEMPLATE_DIR) -> None:
        self._app_name = app_name
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def _render(self, template_name: str, **context) -> str:
        template = self._jinja.get_template(template_name)
        return template.render(
            app_name=self._app_name,
            year=datetime.now(timezone.utc).year,
            **context,
        )

    def admin_login(self, otp: str, minutes: int, logo_url: Optional[str] = None) -> tuple[str, str]:
        """Subject and HTML body for the admin login OTP."""
        html = self._render("admin_login_otp.html", otp=otp, minutes=minutes, logo_url=logo_url)
        return f"{self._app_name} admin login OTP", html

    def password_reset(self, otp: str, minutes: int) -> tuple[str, str]:
        html = self._render("password_reset_otp.html", otp=otp, minutes=minutes)
        return f"{self._app_name} password reset OTP", html

    def return_request(self, otp: str, minutes: int, order_reference: str) -> tuple[str, str]:
        html = self._render(
            "return_otp.html",
            otp=otp,
            minutes=minutes,
            order_reference=order_reference,
        )
        return f"{self._app_name} return request OTP", html
