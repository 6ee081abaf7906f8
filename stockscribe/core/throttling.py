import re

from rest_framework.throttling import AnonRateThrottle

PERIODS = {'s': 1, 'm': 60, 'h': 3600, 'd': 86400}
WINDOW_RE = re.compile(r'^(\d*)\s*([smhd])')


class WindowRateThrottle(AnonRateThrottle):
    """
    Per-IP throttle whose rate may name a multi-unit window

    Accepts the usual "20/minute" as well as "5/15m" (five requests per
    fifteen minutes).
    """

    def parse_rate(self, rate):
        if rate is None:
            return (None, None)
        num, period = rate.split('/')
        match = WINDOW_RE.match(period.strip())
        if match is None:
            raise ValueError(f"Invalid throttle rate: {rate}")
        count, unit = match.groups()
        return (int(num), int(count or 1) * PERIODS[unit])


class AccessCodeRateThrottle(WindowRateThrottle):
    """Stricter per-IP rate for the public approver access-code endpoints"""
    scope = 'access_code'


class AuthRateThrottle(WindowRateThrottle):
    """Login and registration attempts per IP"""
    scope = 'auth'
