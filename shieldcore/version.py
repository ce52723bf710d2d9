VERSION = "8.2.0"
SHIELDCORE = "shieldcore " + VERSION

# Major version whose users get the expert view and no anti-suite on upgrade.
LEGACY_MAJOR = 7


def parse(version: str) -> tuple[int, ...]:
    """
    Parse a dotted version string. Non-numeric components compare as zero.
    """
    parts = []
    for p in version.split("."):
        try:
            parts.append(int(p))
        except ValueError:
            parts.append(0)
    return tuple(parts)
