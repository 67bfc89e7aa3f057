"""Redis Lua script for the distributed token bucket.

The script refills and consumes in one atomic step so that concurrent
callers on any number of hosts see a linearizable bucket per key.
"""

# KEYS[1] is the bucket hash: stored_permits, last_refill_micros
# ARGV: stable_interval_micros, max_permits, now_micros, requested_permits
# Returns {allowed_flag, next_free_ticket_micros, floor(stored_permits)}
#
# A missing hash is a full bucket refilled at now_micros. The key expires
# once a full refill would have happened anyway, so expiry never changes
# a decision.
TOKEN_BUCKET_SCRIPT = """
    local key = KEYS[1]
    local stable_interval_micros = tonumber(ARGV[1])
    local max_permits = tonumber(ARGV[2])
    local now_micros = tonumber(ARGV[3])
    local requested_permits = tonumber(ARGV[4])

    local bucket = redis.call('HMGET', key, 'stored_permits', 'last_refill_micros')
    local stored_permits = tonumber(bucket[1])
    local last_refill_micros = tonumber(bucket[2])
    if stored_permits == nil or last_refill_micros == nil then
        stored_permits = max_permits
        last_refill_micros = now_micros
    end

    -- A regressed clock refills nothing and keeps the old timestamp
    local elapsed = math.max(0, now_micros - last_refill_micros)
    stored_permits = math.min(max_permits, stored_permits + elapsed / stable_interval_micros)
    if now_micros > last_refill_micros then
        last_refill_micros = now_micros
    end

    local allowed = 0
    local next_free_ticket_micros = now_micros
    if stored_permits >= requested_permits then
        stored_permits = stored_permits - requested_permits
        allowed = 1
    else
        -- Denied outright: no permits are borrowed against the future
        local deficit = requested_permits - stored_permits
        next_free_ticket_micros = now_micros + math.ceil(deficit * stable_interval_micros)
    end

    redis.call('HSET', key,
        'stored_permits', string.format('%.17g', stored_permits),
        'last_refill_micros', string.format('%d', last_refill_micros))
    local ttl_millis = math.ceil(max_permits * stable_interval_micros / 1000) + 1000
    redis.call('PEXPIRE', key, ttl_millis)

    return {allowed, next_free_ticket_micros, math.floor(stored_permits)}
"""
