"""
Lua scripts for rate limiting.

Both scripts return ``{allowed, remaining, reset_ms, ceiling}`` where
``allowed`` is 1 or 0 and ``reset_ms`` is the time until the window frees up.
"""

# KEYS[1]: counter key
# ARGV: ceiling, window_ms, n
FIXED_WINDOW_SCRIPT = """
local key = KEYS[1]
local max = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local n = tonumber(ARGV[3])

local current = redis.call("GET", key)
local is_new_window = (current == false)
if is_new_window then
    current = 0
else
    current = tonumber(current)
end

local allowed = 0
local remaining = max - current

if current + n <= max then
    redis.call("INCRBY", key, n)
    -- expiry is set once per window, never refreshed inside it
    if is_new_window then
        redis.call("PEXPIRE", key, window)
    end
    allowed = 1
    remaining = max - current - n
end

local ttl = redis.call("PTTL", key)
if ttl < 0 then
    ttl = window
end

return {allowed, remaining, ttl, max}
"""

# KEYS[1]: sorted set key
# ARGV: ceiling, window_ms, now_ms, n, call_tag
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local max = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local now_ms = tonumber(ARGV[3])
local n = tonumber(ARGV[4])
local tag = ARGV[5]

redis.call("ZREMRANGEBYSCORE", key, 0, now_ms - window_ms)

local current = redis.call("ZCARD", key)

local allowed = 0
local remaining = max - current

if current + n <= max then
    for i = 1, n do
        redis.call("ZADD", key, now_ms, now_ms .. ":" .. tag .. ":" .. i)
    end
    redis.call("PEXPIRE", key, window_ms)
    allowed = 1
    remaining = max - current - n
end

local oldest = redis.call("ZRANGE", key, 0, 0, "WITHSCORES")
local reset_ms = window_ms
if oldest[2] then
    reset_ms = tonumber(oldest[2]) + window_ms - now_ms
    if reset_ms < 0 then
        reset_ms = 0
    end
end

return {allowed, remaining, reset_ms, max}
"""

__all__ = ["FIXED_WINDOW_SCRIPT", "SLIDING_WINDOW_SCRIPT"]
