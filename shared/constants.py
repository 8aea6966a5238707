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

DEFAULT_CURRENCY = "CAD"
DEFAULT_COUNTRY = "Canada"

# Exchange rates are served from the local cache for one hour.
EXCHANGE_RATE_CACHE_DURATION_MS = 3_600_000

# Approximate rates relative to CAD, used when the rates API is unreachable.
FALLBACK_CAD_RATES = {
    "CAD": 1.0,
    "USD": 0.74,
    "EUR": 0.68,
    "GBP": 0.58,
    "JPY": 107.0,
    "AUD": 1.08,
    "CHF": 0.64,
    "CNY": 5.20,
    "INR": 61.0,
}

MAX_LISTING_PHOTOS = 10
HOME_FRESH_FINDS_COUNT = 5

# Bumping this wipes and recreates every local cache table on next open.
CACHE_SCHEMA_VERSION = 1
