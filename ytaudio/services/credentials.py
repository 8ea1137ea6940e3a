"""YouTube credentials: cookie jars in Netscape or JSON form, or a bearer token.

Both cookie formats go through load_credentials(); the format is sniffed from
the content. yt-dlp only reads Netscape cookie files, so the provider renders
whatever it loaded into a private cookie file, a new one on every reload.
yt-dlp writes its jar back to that file when it closes, so an extraction that
started before a reload cannot overwrite the new cookies, and the operator's
file is never touched.
"""

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ytaudio.services import logger
from ytaudio.utils.exceptions import CredentialsError


NETSCAPE_HEADER = "# Netscape HTTP Cookie File"
HTTPONLY_PREFIX = "#HttpOnly_"


@dataclass
class Cookie:
    """A single browser cookie."""
    domain: str
    name: str
    value: str
    path: str = "/"
    secure: bool = False
    expires: int = 0  # 0 = session cookie
    http_only: bool = False

    @property
    def include_subdomains(self) -> bool:
        return self.domain.startswith(".")

    def to_netscape_line(self) -> str:
        domain = f"{HTTPONLY_PREFIX}{self.domain}" if self.http_only else self.domain
        return "\t".join([
            domain,
            "TRUE" if self.include_subdomains else "FALSE",
            self.path,
            "TRUE" if self.secure else "FALSE",
            str(self.expires),
            self.name,
            self.value,
        ])


@dataclass
class AuthContext:
    """Credentials handed to every extraction call."""
    cookies: List[Cookie] = field(default_factory=list)
    token: Optional[str] = None
    source: str = "none"
    loaded_at: float = field(default_factory=time.time)

    @property
    def cookie_count(self) -> int:
        return len(self.cookies)

    @property
    def auth_type(self) -> str:
        if self.token:
            return "token"
        if self.cookies:
            return "cookies"
        return "none"

    @property
    def expires_at(self) -> Optional[float]:
        """Earliest persistent cookie expiry, None if nothing expires."""
        expiries = [c.expires for c in self.cookies if c.expires > 0]
        return float(min(expiries)) if expiries else None

    def is_expired(self, now: Optional[float] = None) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and (now or time.time()) >= expires_at


def parse_netscape_cookies(text: str) -> List[Cookie]:
    """
    Parse a Netscape cookies.txt body.

    Comment and blank lines are skipped, except '#HttpOnly_' lines which
    are cookies flagged HttpOnly. Lines with fewer than 7 tab-separated
    fields are ignored.
    """
    cookies = []
    for raw_line in text.splitlines():
        line = raw_line.rstrip("\r\n")
        http_only = False
        if line.startswith(HTTPONLY_PREFIX):
            line = line[len(HTTPONLY_PREFIX):]
            http_only = True
        elif line.startswith("#") or not line.strip():
            continue

        parts = line.split("\t")
        if len(parts) < 7:
            continue

        try:
            expires = int(parts[4] or 0)
        except ValueError:
            expires = 0

        cookies.append(Cookie(
            domain=parts[0],
            path=parts[2] or "/",
            secure=parts[3].upper() == "TRUE",
            expires=expires,
            name=parts[5],
            value=parts[6],
            http_only=http_only,
        ))
    return cookies


def parse_json_cookies(text: str) -> List[Cookie]:
    """
    Parse a JSON cookie export (a list of records, or {"cookies": [...]}).

    Raises:
        CredentialsError: On invalid JSON or records without name/value
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CredentialsError(f"Cookie JSON is not valid: {e}") from e

    if isinstance(data, dict):
        data = data.get("cookies")
    if not isinstance(data, list):
        raise CredentialsError("Cookie JSON must be a list of cookie records")

    cookies = []
    for index, record in enumerate(data):
        if not isinstance(record, dict) or "name" not in record or "value" not in record:
            raise CredentialsError(f"Cookie record {index} is missing name or value")

        expires = record.get("expires", record.get("expirationDate", 0)) or 0
        try:
            expires = int(float(expires))
        except (TypeError, ValueError):
            expires = 0

        cookies.append(Cookie(
            domain=record.get("domain") or ".youtube.com",
            name=str(record["name"]),
            value=str(record["value"]),
            path=record.get("path") or "/",
            secure=bool(record.get("secure", False)),
            expires=max(expires, 0),
            http_only=bool(record.get("httpOnly", False)),
        ))
    return cookies


def is_json_content(text: str) -> bool:
    return text.lstrip()[:1] in ("[", "{")


def load_credentials(source: Union[Path, str], token: Optional[str] = None) -> AuthContext:
    """
    Load an AuthContext from a cookie file (Path) or inline content (str).

    Raises:
        CredentialsError: If the file cannot be read or the JSON is malformed
    """
    if isinstance(source, Path):
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as e:
            raise CredentialsError(f"Cannot read cookie file {source}: {e}") from e
        origin = str(source)
    else:
        text = source
        origin = "inline"

    if is_json_content(text):
        cookies = parse_json_cookies(text)
        fmt = "json"
    else:
        cookies = parse_netscape_cookies(text)
        fmt = "netscape"

    return AuthContext(cookies=cookies, token=token, source=f"{origin} ({fmt})")


class CredentialsProvider:
    """
    Owns the current AuthContext and reloads it from the configured source.

    Usage:
        provider = CredentialsProvider(cookies_path="cookies.txt", work_dir="/tmp/relay")
        provider.reload(strict=False)
        opts = provider.ydl_opts()
    """

    def __init__(
        self,
        cookies_path: Optional[str] = None,
        inline_cookies: Optional[str] = None,
        token: Optional[str] = None,
        work_dir: str = "/tmp/ytaudio-relay",
    ):
        self.cookies_path = Path(cookies_path) if cookies_path else None
        self.inline_cookies = inline_cookies
        self.token = token
        self.work_dir = Path(work_dir)
        # yt-dlp writes its jar back to cookiefile on close, so every reload gets a new file
        self.cookie_file: Optional[Path] = None
        self._version = 0
        self.current = AuthContext(token=token)

    def reload(self, strict: bool = True) -> AuthContext:
        """
        Re-read the credential source and swap in the new context.

        Args:
            strict: Raise on a missing or unreadable source instead of
                    keeping an empty cookie jar

        Raises:
            CredentialsError: On parse failure, or a missing file when strict
        """
        try:
            if self.inline_cookies:
                context = load_credentials(self.inline_cookies, token=self.token)
            elif self.cookies_path is not None and self.cookies_path.exists():
                context = load_credentials(self.cookies_path, token=self.token)
            elif strict and self.cookies_path is not None:
                raise CredentialsError(f"Cookie file not found: {self.cookies_path}")
            else:
                logger.warn("No cookie source found, continuing without cookies", "auth")
                context = AuthContext(token=self.token)
            cookie_file = self._write_cookie_file(context)
        except CredentialsError as e:
            logger.error(f"Failed to load credentials: {e.message}", "auth")
            raise

        self.current = context
        self.cookie_file = cookie_file
        self._remove_stale_cookie_files()

        if context.is_expired():
            logger.warn("Loaded cookies include expired entries", "auth", {"source": context.source})
        logger.info(
            f"Loaded {context.cookie_count} cookies from {context.source}",
            "auth",
            {"auth_type": context.auth_type, "cookie_count": context.cookie_count},
        )
        return context

    def _write_cookie_file(self, context: AuthContext) -> Optional[Path]:
        """Render the jar into a new versioned Netscape file for yt-dlp."""
        if not context.cookies:
            return None
        self._version += 1
        cookie_file = self.work_dir / f"ytdlp-cookies-{self._version}.txt"
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            lines = [NETSCAPE_HEADER, ""] + [c.to_netscape_line() for c in context.cookies]
            cookie_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as e:
            raise CredentialsError(f"Cannot write cookie file for yt-dlp: {e}") from e
        return cookie_file

    def _remove_stale_cookie_files(self) -> None:
        # An extraction still running on an old file may write it back; the next reload removes it
        for path in self.work_dir.glob("ytdlp-cookies-*.txt"):
            if path != self.cookie_file:
                try:
                    path.unlink()
                except OSError as e:
                    logger.debug(f"Could not remove old cookie file {path.name}: {e}", "auth")

    def ydl_opts(self) -> dict:
        """yt-dlp options carrying the current credentials."""
        context = self.current
        opts: dict = {}
        if context.cookies and self.cookie_file is not None:
            opts["cookiefile"] = str(self.cookie_file)
        if context.token:
            opts["http_headers"] = {"Authorization": f"Bearer {context.token}"}
        return opts
