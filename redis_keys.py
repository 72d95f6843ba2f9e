REDIS_META_KEY = "room:meta:{slug}" # room id - room hash
REDIS_CODE_KEY = "room:code:{code}" # join code - room id alias
REDIS_VOTES_KEY = "room:votes:{slug}" # room id - hash of user_key -> participation record
REDIS_ROOM_MATCHES_KEY = "room:matches:{slug}" # room id - zset of match ids by timestamp
REDIS_USER_ROOMS_KEY = "user:rooms:{user_id}" # user id - zset of room ids by last activity
REDIS_USER_MATCHES_KEY = "user:matches:{user_id}" # user id - zset of match ids by timestamp
REDIS_MATCH_KEY = "match:{match_id}" # "{room_id}#{candidate_id}" - match json
REDIS_INDEX_READY_KEY = "index:ready:{name}" # index name - set once the index is backfilled

REDIS_ROOM_CHANNEL = "match:channel:room:{slug}" # room id - pub/sub channel name
REDIS_USER_CHANNEL = "match:channel:user:{user_id}" # user id - pub/sub channel name

# Scan patterns for the fallback query tier
REDIS_META_PATTERN = "room:meta:*"
REDIS_MATCH_PATTERN = "match:*#*"
REDIS_ROOM_MATCH_PATTERN = "match:{slug}#*"

# Index names used by the capability probe
INDEX_ROOM_CODE = "room_code"
INDEX_ROOM_MATCHES = "room_matches"
INDEX_USER_MATCHES = "user_matches"
ALL_INDEXES = (INDEX_ROOM_CODE, INDEX_ROOM_MATCHES, INDEX_USER_MATCHES)

# **Room hash fields** (`room:meta:{id}`)
# - `id`, `code`, `host_id`, `kind`
# - `tags` = json list of tag ids
# - `candidates` = json list of candidate objects
# - `created_at`, `expires_at` = ISO timestamps (key also carries EXPIREAT)

# **Match keys**
# - `match:{room_id}#{candidate_id}` is only ever written with SET NX.
# - The room/user zsets are written by the creator after the conditional write
#   succeeds and rebuilt from scans by the index backfill.
