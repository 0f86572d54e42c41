class ShortenerError(Exception):
    """Base class for registry failures surfaced to the API layer."""


class DuplicateShortcode(ShortenerError):
    def __init__(self, shortcode: str):
        super().__init__(f"shortcode {shortcode!r} already exists")
        self.shortcode = shortcode


class ExhaustedCodespace(ShortenerError):
    def __init__(self, attempts: int):
        super().__init__(f"no free shortcode after {attempts} attempts")
        self.attempts = attempts


class NotFound(ShortenerError):
    def __init__(self, shortcode: str):
        super().__init__(f"shortcode {shortcode!r} not found")
        self.shortcode = shortcode
