class LyricsError(RuntimeError):
    pass


class LyricsNotFound(LyricsError):
    pass


class ProviderError(LyricsError):
    pass
