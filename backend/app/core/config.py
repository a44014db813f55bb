import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int, *, minimum: int = 0) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _env_choice(key: str, default: str, choices: set[str]) -> str:
    raw = (os.environ.get(key) or "").strip().lower()
    return raw if raw in choices else default


def _cors_origins() -> tuple[str, ...]:
    # FRONTEND_ORIGIN 单值 + FRONTEND_ORIGINS 逗号分隔，去重保序
    raw = [os.environ.get("FRONTEND_ORIGIN") or ""] + (os.environ.get("FRONTEND_ORIGINS") or "").split(",")
    origins = [o.strip().rstrip("/") for o in raw if o.strip()]
    return tuple(dict.fromkeys(origins)) or ("http://localhost:3000",)


@dataclass(frozen=True)
class AppConfig:
    """
    Application Environment Config
    """
    env: str  # 'development', 'staging', 'production'
    is_staging: bool
    supabase_url: str
    supabase_key: str
    store_backend: str  # 'memory' | 'supabase'
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        is_staging = env == "staging"

        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()

        # 中文注释: 未配置 Supabase 时默认使用内存存储（本地/单测），避免启动即失败。
        default_store = "supabase" if (supabase_url and supabase_key) else "memory"
        store_backend = _env_choice("WORKFLOW_STORE", default_store, {"memory", "supabase"})

        return AppConfig(
            env=env,
            is_staging=is_staging,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            store_backend=store_backend,
            cors_origins=_cors_origins(),
        )

# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class WorkflowConfig:
    """
    编辑流程引擎的策略配置。

    中文注释:
    - 审稿周期、容量上限、修回后的复审去向都必须可配置，避免硬编码在服务层。
    - 默认值与期刊投稿须知保持一致（标题 >= 10 字符、摘要约 250 词、4~10 个关键词、3~10 位推荐审稿人）。
    """

    review_window_days: int = 21
    editor_assignment_window_days: int = 14
    review_reminder_interval_days: int = 7

    reviewer_max_active_assignments: int = 3
    editor_max_active_assignments: int = 10
    capacity_enforcement: str = "strict"  # 'strict' | 'warn'

    rereview_policy: str = "under_review"  # 'under_review' | 'technical_check'

    title_min_length: int = 10
    title_max_length: int = 300
    abstract_min_length: int = 1250
    abstract_max_length: int = 5000
    keywords_min: int = 4
    keywords_max: int = 10
    recommended_reviewers_min: int = 3
    recommended_reviewers_max: int = 10

    review_score_max: int = 10
    review_min_comment_length: int = 50
    revision_recommended_response_length: int = 200
    revised_manuscript_extensions: tuple[str, ...] = field(default=(".pdf", ".doc", ".docx"))

    @property
    def strict_capacity(self) -> bool:
        return self.capacity_enforcement == "strict"

    @staticmethod
    def from_env() -> "WorkflowConfig":
        defaults = WorkflowConfig()
        raw_ext = (os.environ.get("REVISED_MANUSCRIPT_EXTENSIONS") or "").strip()
        extensions = defaults.revised_manuscript_extensions
        if raw_ext:
            parsed = tuple(
                e if e.startswith(".") else f".{e}"
                for e in (p.strip().lower() for p in raw_ext.split(","))
                if e
            )
            extensions = parsed or extensions

        return WorkflowConfig(
            review_window_days=_env_int("REVIEW_WINDOW_DAYS", defaults.review_window_days, minimum=1),
            editor_assignment_window_days=_env_int(
                "EDITOR_ASSIGNMENT_WINDOW_DAYS", defaults.editor_assignment_window_days, minimum=1
            ),
            review_reminder_interval_days=_env_int(
                "REVIEW_REMINDER_INTERVAL_DAYS", defaults.review_reminder_interval_days, minimum=1
            ),
            reviewer_max_active_assignments=_env_int(
                "REVIEWER_MAX_ACTIVE_ASSIGNMENTS", defaults.reviewer_max_active_assignments, minimum=1
            ),
            editor_max_active_assignments=_env_int(
                "EDITOR_MAX_ACTIVE_ASSIGNMENTS", defaults.editor_max_active_assignments, minimum=1
            ),
            capacity_enforcement=_env_choice("CAPACITY_ENFORCEMENT", defaults.capacity_enforcement, {"strict", "warn"}),
            rereview_policy=_env_choice(
                "REREVIEW_POLICY", defaults.rereview_policy, {"under_review", "technical_check"}
            ),
            title_min_length=_env_int("SUBMISSION_TITLE_MIN_LENGTH", defaults.title_min_length, minimum=1),
            title_max_length=_env_int("SUBMISSION_TITLE_MAX_LENGTH", defaults.title_max_length, minimum=1),
            abstract_min_length=_env_int("SUBMISSION_ABSTRACT_MIN_LENGTH", defaults.abstract_min_length, minimum=1),
            abstract_max_length=_env_int("SUBMISSION_ABSTRACT_MAX_LENGTH", defaults.abstract_max_length, minimum=1),
            keywords_min=_env_int("SUBMISSION_KEYWORDS_MIN", defaults.keywords_min, minimum=0),
            keywords_max=_env_int("SUBMISSION_KEYWORDS_MAX", defaults.keywords_max, minimum=1),
            recommended_reviewers_min=_env_int(
                "SUBMISSION_RECOMMENDED_REVIEWERS_MIN", defaults.recommended_reviewers_min, minimum=0
            ),
            recommended_reviewers_max=_env_int(
                "SUBMISSION_RECOMMENDED_REVIEWERS_MAX", defaults.recommended_reviewers_max, minimum=1
            ),
            review_score_max=_env_int("REVIEW_SCORE_MAX", defaults.review_score_max, minimum=1),
            review_min_comment_length=_env_int(
                "REVIEW_MIN_COMMENT_LENGTH", defaults.review_min_comment_length, minimum=0
            ),
            revision_recommended_response_length=_env_int(
                "REVISION_RECOMMENDED_RESPONSE_LENGTH", defaults.revision_recommended_response_length, minimum=0
            ),
            revised_manuscript_extensions=extensions,
        )


def get_jwt_secret() -> str:
    """
    HTTP 层 Bearer Token 校验密钥。

    中文注释: 兼容 Supabase 项目的 SUPABASE_JWT_SECRET 命名。
    """
    return (
        os.environ.get("JWT_SECRET")
        or os.environ.get("SUPABASE_JWT_SECRET")
        or "mock-secret-replace-later"
    ).strip()


@dataclass(frozen=True)
class SMTPConfig:
    """
    工作流通知的 SMTP 投递配置（SMTP_*）。

    未设置 SMTP_HOST 时返回 None，EmailService 改用 Resend 或只记日志。
    """

    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    from_email: str
    use_starttls: bool

    @staticmethod
    def from_env() -> Optional["SMTPConfig"]:
        host = (os.environ.get("SMTP_HOST") or "").strip()
        if not host:
            return None

        port = _env_int("SMTP_PORT", 587, minimum=1)
        user = (os.environ.get("SMTP_USER") or "").strip() or None
        password = (os.environ.get("SMTP_PASSWORD") or "").strip() or None

        from_email = (
            os.environ.get("SMTP_FROM_EMAIL") or user or "no-reply@journalflow.local"
        ).strip()

        use_starttls = _env_bool("SMTP_USE_STARTTLS", True)

        return SMTPConfig(
            host=host,
            port=port,
            user=user,
            password=password,
            from_email=from_email,
            use_starttls=use_starttls,
        )


@dataclass(frozen=True)
class ResendConfig:
    """
    Resend API Configuration (production email)
    """
    api_key: str
    sender: str

    @staticmethod
    def from_env() -> Optional["ResendConfig"]:
        api_key = (os.environ.get("RESEND_API_KEY") or "").strip()
        if not api_key:
            return None

        sender = (
            os.environ.get("EMAIL_SENDER") or "JournalFlow <onboarding@resend.dev>"
        ).strip()

        return ResendConfig(api_key=api_key, sender=sender)


@dataclass(frozen=True)
class SentryConfig:
    enabled: bool
    dsn: str
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip()
        enabled = _env_bool("SENTRY_ENABLED", bool(dsn))
        environment = (os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development").strip()
        raw_rate = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip()
        try:
            rate = float(raw_rate)
        except ValueError:
            rate = 0.0
        rate = min(max(rate, 0.0), 1.0)
        return SentryConfig(enabled=enabled, dsn=dsn, environment=environment, traces_sample_rate=rate)
