# Control-plane constants (wire values and allocation defaults)

# Declared tunnel transports
TRANSPORT_UDP = "udp"
TRANSPORT_TCP = "tcp"
TRANSPORTS = (TRANSPORT_UDP, TRANSPORT_TCP)

# Declared cipher suites. The control plane only records these; it never
# encrypts tunnel traffic itself.
CIPHER_AES_256_GCM = "aes-256-gcm"
CIPHER_CHACHA20_POLY1305 = "chacha20-poly1305"
CIPHER_SUITES = (CIPHER_AES_256_GCM, CIPHER_CHACHA20_POLY1305)
DEFAULT_CIPHER_SUITE = CIPHER_AES_256_GCM

# Room defaults
DEFAULT_TRANSPORT = TRANSPORT_UDP
DEFAULT_MTU = 1400
MAX_MTU = 65535
KEEPALIVE_INTERVAL_S = 15
ROOM_ID_PREFIX = "room-"
OVERLAY_SUBNET_FMT = "10.0.{n}.0/24"
VIRTUAL_IP_FMT = "10.0.{a}.{b}"

# Keepalive acknowledgement
RECOMMENDED_KEEPALIVE_DELAY_MS = 5000

# Token and credential material (bytes of entropy)
TOKEN_BYTES = 16
SESSION_KEY_BYTES = 16
SALT_BYTES = 16
TOKEN_ISSUE_ATTEMPTS = 4

# scrypt work factors for password hashing
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_DKLEN = 32

# Demo account seeded into an empty credential store
DEMO_USERNAME = "gamer"
DEMO_PASSWORD = "password123"
DEMO_DEVICE_ID = "demo-device"
