import logging
from dataclasses import dataclass

import sounddevice as sd

from config import LiveInterpreterConfig

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: LiveInterpreterConfig) -> list[HealthCheckResult]:
    results = [
        _check_audio_device(config),
        _check_credentials(config),
        _check_languages(config),
    ]

    passed = sum(1 for r in results if r.passed)

    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    critical_checks = {"audio_device"}
    return any(not r.passed and r.name in critical_checks for r in results)


def _check_audio_device(config: LiveInterpreterConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        if config.capture_device:
            for dev in sd.query_devices():
                if config.capture_device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                    return HealthCheckResult(
                        name=name,
                        passed=True,
                        detail=f"Device '{dev['name']}' at {int(dev['default_samplerate'])} Hz",
                    )
        default = sd.query_devices(kind="input")
        return HealthCheckResult(
            name=name,
            passed=True,
            detail=f"Default input '{default['name']}' at {int(default['default_samplerate'])} Hz",
        )
    except sd.PortAudioError:
        return HealthCheckResult(name=name, passed=False, detail="No input devices available")
    except Exception as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))


def _check_credentials(config: LiveInterpreterConfig) -> HealthCheckResult:
    name = "credentials"
    credentials = config.credentials()
    if not credentials.access_key or not credentials.secret_key:
        # Signing still works with empty keys; the service rejects the connection later.
        return HealthCheckResult(name=name, passed=False, detail="Access key or secret key is empty")
    token = " with session token" if credentials.session_token else ""
    return HealthCheckResult(name=name, passed=True, detail=f"Access key {credentials.access_key[:4]}...{token}")


def _check_languages(config: LiveInterpreterConfig) -> HealthCheckResult:
    name = "languages"
    source = config.source_language[:2].lower()
    target = config.target_language[:2].lower()
    if source == target:
        return HealthCheckResult(name=name, passed=False, detail=f"Source and target are both '{source}'")
    rate = config.sample_rate_for(config.source_language)
    return HealthCheckResult(
        name=name,
        passed=True,
        detail=f"{config.source_language} ({rate} Hz) -> {config.target_language}",
    )
