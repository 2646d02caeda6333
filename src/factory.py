import logging

from adapters.aws_translate import AwsTranslateClient
from adapters.sounddevice_audio import SounddeviceCapture
from adapters.unix_control import UnixSocketControlServer
from adapters.websocket_transport import WebSocketTransport
from config import LiveInterpreterConfig
from domain.interpreter import LiveInterpreter
from domain.signing import AwsCredentials

logger = logging.getLogger(__name__)


def create_capture(config: LiveInterpreterConfig) -> SounddeviceCapture:
    return SounddeviceCapture(
        device=config.capture_device or None,
        frame_duration_ms=config.frame_duration_ms,
        gain=config.capture_gain,
    )


def create_translator(config: LiveInterpreterConfig, region: str, credentials: AwsCredentials) -> AwsTranslateClient:
    return AwsTranslateClient(
        region=region,
        credentials=credentials,
        timeout=config.translate_timeout_seconds,
    )


def create_interpreter(config: LiveInterpreterConfig) -> LiveInterpreter:
    return LiveInterpreter(
        capture=create_capture(config),
        transport_factory=WebSocketTransport,
        translator_factory=lambda region, credentials: create_translator(config, region, credentials),
        expiry_seconds=config.url_expiry_seconds,
        buffer_until_open=config.buffer_until_open,
        close_timeout=config.close_timeout_seconds,
        sample_rate_policy=config.sample_rate_for,
    )


def create_application(
    config: LiveInterpreterConfig,
) -> tuple[LiveInterpreter, UnixSocketControlServer]:
    interpreter = create_interpreter(config)
    control = UnixSocketControlServer(socket_path=config.socket_path)
    return interpreter, control
