class SubhoundError(Exception):
    pass


class InputError(SubhoundError):
    """Bad user input: invalid domain, missing wordlist, bad flag value."""


class FetchFailure(SubhoundError):
    """A single network call or scan failed. Recovered per item."""


class SourceFailure(SubhoundError):
    """A whole passive source failed. Recovered by the registry."""
