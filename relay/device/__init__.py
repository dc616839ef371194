# Device emulation helpers
