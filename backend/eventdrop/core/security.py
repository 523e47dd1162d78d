import base64
import binascii
import hashlib
import hmac
import os
import re
from dataclasses import dataclass


def hash_password(password: str, salt: bytes | None = None) -> str:
    if salt is None:
        salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 120000)
    return base64.b64encode(salt + digest).decode("utf-8")


def verify_password(password: str, encoded: str | None) -> bool:
    if not password or not encoded:
        return False
    try:
        data = base64.b64decode(encoded.encode("utf-8"), validate=True)
    except (binascii.Error, ValueError):
        return False
    salt = data[:16]
    stored = data[16:]
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 120000)
    return hmac.compare_digest(stored, digest)


@dataclass(frozen=True)
class BasicCredentials:
    user: str = ""
    password: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.user and self.password)


def parse_basic_auth(header: str | None) -> BasicCredentials:
    """解析 HTTP Basic 认证头

    缺失或格式错误时返回空凭证，不抛出异常。密码取第一个冒号之后的全部内容。

    Args:
        header: Authorization 请求头的原始值

    Returns:
        BasicCredentials
    """
    if not header or not header.startswith("Basic "):
        return BasicCredentials()
    token = header[6:].strip()
    if not token:
        return BasicCredentials()
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return BasicCredentials()
    user, _, password = decoded.partition(":")
    return BasicCredentials(user=user, password=password)


# ANSI 转义序列正则（匹配 ESC[ 开头的控制序列）
_ANSI_ESCAPE_RE = re.compile(r'\x1b\[[0-9;]*[a-zA-Z]|\x1b[^[]')

# 控制字符（除了 \t 和 \n，但包括 \r 以防止覆盖攻击）
_CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b-\x0d\x0e-\x1f\x7f]')


def sanitize_string(s: str | None) -> str | None:
    """清理字符串中的控制字符和 ANSI 转义序列

    用于防止日志注入攻击（用户名、文件名等由客户端提供的值）。

    Args:
        s: 待清理的字符串

    Returns:
        清理后的字符串，控制字符被替换为空
    """
    if s is None:
        return None
    s = _ANSI_ESCAPE_RE.sub('', s)
    s = _CONTROL_CHARS_RE.sub('', s)
    return s
