from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.signing import AwsCredentials


class LiveInterpreterConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LIVE_INTERPRETER_")

    source_language: str = "en-US"
    target_language: str = "ko"
    region: str = "us-east-1"

    access_key_id: str = ""
    secret_access_key: str = ""
    session_token: str = ""
    access_key_id_file: str = ""
    secret_access_key_file: str = ""
    session_token_file: str = ""

    url_expiry_seconds: int = 15
    close_timeout_seconds: float = 5.0
    buffer_until_open: bool = False
    translate_timeout_seconds: float = 10.0

    high_rate_languages: list[str] = ["en-US", "es-US"]
    high_sample_rate: int = 44100
    low_sample_rate: int = 8000

    capture_device: str = ""
    capture_gain: float = 1.0
    frame_duration_ms: int = 100

    socket_path: str = "/tmp/live-interpreter.sock"
    log_file: str = ""

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def credentials(self) -> AwsCredentials:
        return AwsCredentials(
            access_key=self.access_key_id or self.read_secret(self.access_key_id_file),
            secret_key=self.secret_access_key or self.read_secret(self.secret_access_key_file),
            session_token=self.session_token or self.read_secret(self.session_token_file),
        )

    def sample_rate_for(self, language_code: str) -> int:
        if language_code in self.high_rate_languages:
            return self.high_sample_rate
        return self.low_sample_rate
