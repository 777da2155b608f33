"""
Configuration Management

시스템 설정 관리
"""

import os
import yaml
from dataclasses import asdict, dataclass, field
from typing import Optional, Dict, Any
from pathlib import Path
import logging


DEFAULT_ENGINE_MODEL = "gpt-5.2-codex"
DEFAULT_REASONING_EFFORT = "xhigh"
SECOND_PASS_POLICIES = {"auto", "always", "never"}


def _optional(value: Optional[str]) -> Optional[str]:
    return value if value else None


def _optional_int(value: Optional[str]) -> Optional[int]:
    return int(value) if value else None


def _optional_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


@dataclass
class EngineConfig:
    """외부 추론 엔진 설정"""
    command: str = "codex"
    model: Optional[str] = DEFAULT_ENGINE_MODEL
    reasoning_effort: Optional[str] = DEFAULT_REASONING_EFFORT
    profile: Optional[str] = None
    oss: bool = False
    cd: Optional[str] = None
    sandbox: str = "read-only"
    timeout_seconds: Optional[float] = 900.0


@dataclass
class ReviewConfig:
    """리뷰 생성 설정"""
    second_pass: str = "auto"  # 'auto', 'always', 'never'
    refine_min_notes: Optional[int] = None  # None: use computed review targets
    max_notes_cap: int = 12
    min_note_words: int = 60
    max_findings: int = 20
    max_annotations: int = 60
    annotations_enabled: bool = True
    context_max_chars: int = 4000


@dataclass
class StoreConfig:
    """실행 결과 저장소 설정"""
    repo_root: Optional[str] = None
    runs_dir: str = ".ai-diff-reviewer/runs"


@dataclass
class ServerConfig:
    """읽기 전용 HTTP API 설정"""
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class LoggingConfig:
    """로깅 설정"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class AppConfig:
    """전체 애플리케이션 설정"""
    engine: EngineConfig = field(default_factory=EngineConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        """환경 변수에서 설정 로드"""
        return cls(
            engine=EngineConfig(
                command=os.getenv("ENGINE_COMMAND", "codex"),
                model=_optional(os.getenv("ENGINE_MODEL", DEFAULT_ENGINE_MODEL)),
                reasoning_effort=_optional(os.getenv("ENGINE_REASONING_EFFORT", DEFAULT_REASONING_EFFORT)),
                profile=_optional(os.getenv("ENGINE_PROFILE")),
                oss=os.getenv("ENGINE_OSS", "false").lower() == "true",
                cd=_optional(os.getenv("ENGINE_CD")),
                sandbox=os.getenv("ENGINE_SANDBOX", "read-only"),
                timeout_seconds=_optional_float(os.getenv("ENGINE_TIMEOUT", "900")),
            ),
            review=ReviewConfig(
                second_pass=os.getenv("SECOND_PASS", "auto").lower(),
                refine_min_notes=_optional_int(os.getenv("REFINE_MIN_NOTES")),
                max_notes_cap=int(os.getenv("MAX_NOTES", "12")),
                min_note_words=int(os.getenv("MIN_NOTE_WORDS", "60")),
                max_findings=int(os.getenv("MAX_FINDINGS", "20")),
                max_annotations=int(os.getenv("MAX_ANNOTATIONS", "60")),
                annotations_enabled=os.getenv("ANNOTATIONS", "true").lower() == "true",
                context_max_chars=int(os.getenv("CONTEXT_MAX_CHARS", "4000")),
            ),
            store=StoreConfig(
                repo_root=_optional(os.getenv("REPO_ROOT")),
                runs_dir=os.getenv("RUNS_DIR", ".ai-diff-reviewer/runs"),
            ),
            server=ServerConfig(
                host=os.getenv("SERVER_HOST", "127.0.0.1"),
                port=int(os.getenv("SERVER_PORT", "8765")),
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
                file_path=os.getenv("LOG_FILE"),
                max_file_size=int(os.getenv("LOG_MAX_SIZE", str(10 * 1024 * 1024))),
                backup_count=int(os.getenv("LOG_BACKUP_COUNT", "5")),
            ),
            debug=os.getenv("DEBUG", "false").lower() == "true",
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> "AppConfig":
        """YAML 파일에서 설정 로드"""
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> "AppConfig":
        return cls(
            engine=EngineConfig(**config_data.get('engine', {})),
            review=ReviewConfig(**config_data.get('review', {})),
            store=StoreConfig(**config_data.get('store', {})),
            server=ServerConfig(**config_data.get('server', {})),
            logging=LoggingConfig(**config_data.get('logging', {})),
            debug=config_data.get('debug', False),
        )

    def validate(self) -> None:
        """설정 유효성 검사"""
        errors = []

        if not self.engine.command.strip():
            errors.append("Engine command is required")

        if self.engine.timeout_seconds is not None and self.engine.timeout_seconds <= 0:
            errors.append("Engine timeout must be positive")

        if self.review.second_pass not in SECOND_PASS_POLICIES:
            errors.append(f"Invalid second pass policy: {self.review.second_pass}")

        if self.review.refine_min_notes is not None and self.review.refine_min_notes < 0:
            errors.append("Refine threshold must be non-negative")

        if self.review.max_findings <= 0 or self.review.max_notes_cap <= 0:
            errors.append("Result caps must be positive")

        if self.review.min_note_words < 0:
            errors.append("Minimum note word count must be non-negative")

        if not 0 <= self.server.port <= 65535:
            errors.append(f"Invalid server port: {self.server.port}")

        # 로그 레벨 검증
        valid_log_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if self.logging.level.upper() not in valid_log_levels:
            errors.append(f"Invalid log level: {self.logging.level}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def to_dict(self) -> Dict[str, Any]:
        """설정을 딕셔너리로 변환"""
        return asdict(self)


class ConfigManager:
    """설정 관리자"""

    def __init__(self, config: Optional[AppConfig] = None):
        self._config = config or AppConfig.from_env()
        self._config.validate()
        self._setup_logging()

    @property
    def config(self) -> AppConfig:
        """현재 설정 반환"""
        return self._config

    def _setup_logging(self) -> None:
        """로깅 설정"""
        logging.basicConfig(
            level=getattr(logging, self._config.logging.level.upper()),
            format=self._config.logging.format,
        )
        logging.getLogger().setLevel(getattr(logging, self._config.logging.level.upper()))

        # 파일 로깅이 설정된 경우 로테이션 설정
        if self._config.logging.file_path:
            from logging.handlers import RotatingFileHandler

            root_logger = logging.getLogger()
            already_attached = any(
                isinstance(h, RotatingFileHandler)
                and getattr(h, 'baseFilename', None) == str(Path(self._config.logging.file_path).resolve())
                for h in root_logger.handlers
            )
            if already_attached:
                return

            handler = RotatingFileHandler(
                self._config.logging.file_path,
                maxBytes=self._config.logging.max_file_size,
                backupCount=self._config.logging.backup_count,
            )
            handler.setFormatter(logging.Formatter(self._config.logging.format))
            root_logger.addHandler(handler)


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """전역 설정 관리자 (최초 호출 시 생성)"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def set_config(config: AppConfig) -> ConfigManager:
    """전역 설정 교체"""
    global _config_manager
    _config_manager = ConfigManager(config)
    return _config_manager


def get_config() -> AppConfig:
    """현재 설정 반환"""
    return get_config_manager().config
