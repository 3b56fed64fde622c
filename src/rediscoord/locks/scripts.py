"""
Lua scripts for lock ownership checks.

Both scripts compare the stored owner token with the caller's before acting,
so a holder whose lease expired can never delete or extend a lock that has
since been granted to someone else. Both return 1 on success and 0 otherwise.

KEYS[1] is the lock key, ARGV[1] the owner token.
"""

RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""

# ARGV[2]: new lease length in milliseconds
EXTEND_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
else
    return 0
end
"""

__all__ = ["RELEASE_SCRIPT", "EXTEND_SCRIPT"]
