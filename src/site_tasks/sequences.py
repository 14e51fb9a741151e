"""Entry points. A tuple step starts its tasks together and waits for all of them."""

from assetpipe import sequence


# `watch` never returns; it must stay last.
default = sequence(
    "default",
    "clean",
    "fonts",
    "scripts",
    "images",
    "pages",
    "reset-pages",
    "media",
    "watch",
)

# Styles are fully written before the group starts.
build = sequence(
    "build",
    "clean",
    "styles",
    ("scripts", "images", "fonts", "pages"),
)
