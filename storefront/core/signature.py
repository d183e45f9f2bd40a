"""Подпись параметров платежных шлюзов (HMAC над каноничной строкой)."""
import hashlib
import hmac
from typing import Mapping, Sequence, Callable

SUPPORTED_ALGORITHMS = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


class CanonicalizationError(ValueError):
    """В параметрах нет обязательного ключа."""

    def __init__(self, key: str):
        super().__init__(f"Missing required signature field: {key}")
        self.key = key


def canonicalize(
    params: Mapping[str, str],
    ordered_keys: Sequence[str],
    *,
    skip_empty: bool = False,
    encode: Callable[[str], str] | None = None,
) -> str:
    """
    Собрать каноничную строку key=value&key=value.

    Порядок ключей задает вызывающий (у каждого шлюза свой).

    Args:
        params: Параметры запроса/ответа
        ordered_keys: Ключи, участвующие в подписи, в нужном порядке
        skip_empty: Пропускать ключи с пустым значением (правило VNPay)
        encode: Функция кодирования значений (например quote_plus)

    Raises:
        CanonicalizationError: если ключа нет в params и skip_empty=False
    """
    parts = []
    for key in ordered_keys:
        value = params.get(key)
        if value is None:
            if skip_empty:
                continue
            raise CanonicalizationError(key)
        value = str(value)
        if skip_empty and value == "":
            continue
        if encode is not None:
            value = encode(value)
        parts.append(f"{key}={value}")
    return "&".join(parts)


def _as_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def sign(canonical: str, secret: str | bytes, algorithm: str = "sha256") -> str:
    """HMAC над UTF-8 байтами каноничной строки, hex digest."""
    digestmod = SUPPORTED_ALGORITHMS.get(algorithm)
    if digestmod is None:
        raise ValueError(f"Unsupported HMAC algorithm: {algorithm}")
    return hmac.new(_as_bytes(secret), _as_bytes(canonical), digestmod).hexdigest()


def verify(canonical: str, secret: str | bytes, supplied_digest: str | None, algorithm: str = "sha256") -> bool:
    """
    Пересчитать подпись и сравнить за постоянное время.

    Никогда не бросает исключений: любая некорректная подпись - False.
    """
    if not supplied_digest or not isinstance(supplied_digest, str):
        return False
    try:
        expected = sign(canonical, secret, algorithm)
        # hex регистронезависим, шлюзы присылают и верхний, и нижний регистр
        return hmac.compare_digest(expected, supplied_digest.strip().lower())
    except (ValueError, TypeError, UnicodeEncodeError):
        return False
