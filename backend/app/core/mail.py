import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape
from tenacity import retry, stop_after_attempt, wait_exponential

from app.core.config import ResendConfig, SMTPConfig

logger = logging.getLogger("journalflow.mail")

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

# 工作流通知的投递重试策略：3 次，2s 起指数退避，上限 10s
_delivery_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


@dataclass(frozen=True)
class OutgoingMail:
    to_email: str
    subject: str
    html_body: str
    text_body: Optional[str] = None


class EmailService:
    """
    工作流邮件投递。

    中文注释:
    - provider 顺序：SMTP -> Resend；前一个重试耗尽后才尝试下一个。
    - 全部失败返回 False，只记录日志，不向调用方抛出（通知不得回滚工作流）。
    - 模板位于 app/core/templates，jinja2 autoescape 防止稿件标题等用户输入注入 HTML。
    """

    _UNSET = object()

    def __init__(
        self,
        *,
        smtp_config: SMTPConfig | None | object = _UNSET,
        resend_config: ResendConfig | None | object = _UNSET,
        templates_dir: Optional[Path] = None,
    ):
        # 显式传 None 表示关闭该 provider
        self.smtp_config: SMTPConfig | None = (
            SMTPConfig.from_env() if smtp_config is self._UNSET else smtp_config  # type: ignore[assignment]
        )
        self.resend_config: ResendConfig | None = (
            ResendConfig.from_env() if resend_config is self._UNSET else resend_config  # type: ignore[assignment]
        )
        if self.resend_config is not None:
            resend.api_key = self.resend_config.api_key

        self._templates = Environment(
            loader=FileSystemLoader(str(templates_dir or _TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def is_configured(self) -> bool:
        return self.smtp_config is not None or self.resend_config is not None

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        return self._templates.get_template(template_name).render(**context)

    def _providers(self) -> List[Tuple[str, Callable[[OutgoingMail], Any]]]:
        chain: List[Tuple[str, Callable[[OutgoingMail], Any]]] = []
        if self.smtp_config is not None:
            chain.append(("SMTP", self._send_smtp))
        if self.resend_config is not None:
            chain.append(("Resend", self._send_resend))
        return chain

    @_delivery_retry
    def _send_smtp(self, mail: OutgoingMail) -> None:
        cfg = self.smtp_config
        if cfg is None:
            raise RuntimeError("SMTP is not configured")

        message = MIMEMultipart("alternative")
        message["Subject"] = mail.subject
        message["From"] = cfg.from_email
        message["To"] = mail.to_email
        if mail.text_body:
            message.attach(MIMEText(mail.text_body, "plain", "utf-8"))
        message.attach(MIMEText(mail.html_body, "html", "utf-8"))

        with smtplib.SMTP(cfg.host, cfg.port) as conn:
            if cfg.use_starttls:
                conn.starttls()
            if cfg.user and cfg.password:
                conn.login(cfg.user, cfg.password)
            conn.sendmail(cfg.from_email, [mail.to_email], message.as_string())

    @_delivery_retry
    def _send_resend(self, mail: OutgoingMail) -> Any:
        cfg = self.resend_config
        if cfg is None:
            raise RuntimeError("Resend is not configured")
        params: Dict[str, Any] = {
            "from": cfg.sender,
            "to": [mail.to_email],
            "subject": mail.subject,
            "html": mail.html_body,
        }
        if mail.text_body:
            params["text"] = mail.text_body
        return resend.Emails.send(params)

    def deliver(self, mail: OutgoingMail) -> bool:
        providers = self._providers()
        if not providers:
            logger.info("[Email] no provider configured, skipped: to=%s subject=%s", mail.to_email, mail.subject)
            return False

        for name, send in providers:
            try:
                send(mail)
            except Exception as e:
                logger.warning("[%s] delivery to %s failed after retries: %s", name, mail.to_email, e)
                continue
            return True
        return False

    def send_email(
        self,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        return self.deliver(OutgoingMail(to_email=to_email, subject=subject, html_body=html_body, text_body=text_body))

    def send_template_email(
        self,
        *,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> bool:
        """渲染失败视同投递失败，返回 False。"""
        if not self.is_configured():
            return False
        try:
            html = self.render_template(template_name, context)
        except Exception as e:
            logger.warning("[Email] template %s render failed: %s", template_name, e)
            return False
        return self.deliver(OutgoingMail(to_email=to_email, subject=subject, html_body=html))
