# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import time
from datetime import datetime, timezone
from typing import Optional

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


def now_millis() -> int:
    return int(time.time() * 1000)


def format_relative_time(timestamp: int, now: Optional[int] = None) -> str:
    """
    Formats an epoch-millis timestamp as "now", "5m ago", "3h ago" or "2d ago".

    Non-positive timestamps format as an empty string. Timestamps in the
    future are treated as "now".
    """
    if timestamp <= 0:
        return ""
    if now is None:
        now = now_millis()
    diff = max(now - timestamp, 0)

    minutes = diff // MINUTE_MS
    hours = diff // HOUR_MS
    days = diff // DAY_MS

    if minutes < 1:
        return "now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{days}d ago"


def format_price(price: float, currency: str) -> str:
    return f"${price:.2f} {currency}"


def format_price_short(price: float) -> str:
    """Feed-card price text, e.g. "$850.0"."""
    return f"${float(price)}"


def format_rating(rating: float, reviews_count: int) -> str:
    return f"{rating:.1f} ({reviews_count} reviews)"


def member_since_year(created_at: int) -> str:
    if created_at <= 0:
        return ""
    return str(datetime.fromtimestamp(created_at / 1000, tz=timezone.utc).year)
