# tests/helpers.py
import pyotp

# 1700000010 s is the start of a 30 s TOTP step
START_MS = 1_700_000_010_000
TEST_PASSWORD = "CorrectHorse9!"

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)


class FakeClock:
    """Controllable millisecond clock."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 0, *, seconds: int = 0, minutes: int = 0, days: int = 0) -> None:
        self.now += ms + 1000 * (seconds + 60 * minutes + 86_400 * days)


def totp_code(secret: str, clock: FakeClock, step_offset: int = 0) -> str:
    """Code an authenticator app would show at the clock's current time."""
    totp = pyotp.TOTP(secret)
    return totp.generate_otp((clock.now // 1000) // totp.interval + step_offset)


async def login(
    client,
    email: str,
    password: str = TEST_PASSWORD,
    code: str | None = None,
    ip: str = "203.0.113.1",
    user_agent: str = CHROME_WINDOWS_UA,
):
    """POST the login form the way a browser behind the proxy would."""
    body = {"email": email, "password": password}
    if code is not None:
        body["twoFactorCode"] = code
    return await client.post(
        "/api/auth/login",
        json=body,
        headers={"User-Agent": user_agent, "X-Forwarded-For": ip},
    )


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
