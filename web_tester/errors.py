"""Exceptions raised by the web tester."""


class WebTesterError(Exception):
    """Base exception for web tester errors."""
    pass


class EngineLaunchError(WebTesterError):
    """The browser automation engine could not be started.

    This is the only error that aborts a whole scan run.
    """
    pass


class NavigationError(WebTesterError):
    """A single page visit failed.

    Raised by the page session collector for navigation timeouts, network
    errors, in-page script failures and screenshot failures. The crawl
    orchestrator converts it into a failed page event and moves on.
    """

    def __init__(self, url: str, message: str, error_type: str = "crawl_error"):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.error_type = error_type

    @classmethod
    def from_exception(cls, url: str, exc: BaseException) -> "NavigationError":
        """Wrap an engine exception, classifying it by its message."""
        error_str = str(exc).lower()
        if "timeout" in error_str:
            error_type = "timeout"
        elif "navigation" in error_str:
            error_type = "navigation_error"
        elif "net::" in error_str:
            error_type = "network_error"
        else:
            error_type = "crawl_error"
        return cls(url, str(exc) or type(exc).__name__, error_type=error_type)
