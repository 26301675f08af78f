"""Module containing custom exceptions."""


class CustomError(Exception):
    """Custom alphaident error class."""

    _error_code = ""
    _msg = ""
    _detail_msg = ""
    _user_msg = ""

    @property
    def error_code(self):
        return self._error_code

    @property
    def msg(self):
        return self._msg

    @property
    def detail_msg(self):
        return self._detail_msg

    def __init__(self, msg: str = ""):
        self._user_msg = msg

        super().__init__(self._msg)

    def __str__(self):
        return (
            f"{self._error_code}: {self._msg}\n'{self._user_msg}'\n{self._detail_msg}"
        )


class BusinessError(CustomError):
    """Custom error class for 'business' errors.

    A 'business' error is an error that is caused during processing the input (data, configuration, ...) and not by a
    malfunction in alphaident.
    """


class UserError(CustomError):
    """Custom error class for 'user' errors.

    A 'user' error is an error that is caused by the incompatible user input (data, configuration, ...) and not by a
    malfunction in alphaident.
    """


class TooFewPSMError(BusinessError):
    """Raise when too few PSMs are available to perform a task."""

    _error_code = "TOO_FEW_PSM"

    _msg = "Too few PSMs available to perform the task."


class TooFewProteinsError(BusinessError):
    """Raise when too few Proteins are available to perform a task."""

    _error_code = "TOO_FEW_PROTEINS"

    _msg = "Too few proteins available to perform the task."


class DataConsistencyError(BusinessError):
    """Raise when search results reference entities that are unknown to a later stage."""

    _error_code = "DATA_CONSISTENCY"

    _msg = "Search results and peptide mapping are inconsistent."

    def __init__(self, detail_msg: str = ""):
        super().__init__()
        self._detail_msg = detail_msg


class SearchCancelledError(BusinessError):
    """Raise when a running search observed a cancellation request."""

    _error_code = "SEARCH_CANCELLED"

    _msg = "The search was cancelled before all scans were processed."


class WorkerError(BusinessError):
    """Raise when a search worker failed while processing its scan partition."""

    _error_code = "WORKER_ERROR"

    _msg = "A search worker failed."

    def __init__(self, start: int, stop: int, scan_index: int, cause: str = ""):
        super().__init__()
        self.start = start
        self.stop = stop
        self.scan_index = scan_index
        self._detail_msg = (
            f"Partition [{start}, {stop}) failed at scan_index={scan_index}: {cause}"
        )


class ConfigError(BusinessError):
    """Raise when something is wrong with the provided configuration."""

    _error_code = "CONFIG_ERROR"

    _msg = "Malformed or invalid configuration."
    _key = ""
    _config_name = ""
    _detail_msg = ""

    def __init__(
        self,
        key: str = "",
        value: str = "",
        config_name: str = "",
        detail_msg: str = "",
    ):
        self._key = key
        self._value = value
        self._config_name = config_name
        self._detail_msg = detail_msg


class KeyAddedConfigError(ConfigError):
    """Raise when a key should be added to a config."""

    def __init__(self, key: str, value: str, config_name: str):
        super().__init__(key, value, config_name)
        self._detail_msg = (
            f"Defining new keys is not allowed when updating a config: "
            f"key='{self._key}', value='{self._value}', config_name='{self._config_name}'"
        )


class TypeMismatchConfigError(ConfigError):
    """Raise when the type of a value does not match the default type."""

    def __init__(self, key: str, value: str, config_name: str, extra_msg: str):
        super().__init__(key, value, config_name)
        self._detail_msg = (
            f"Types of values must match default config: "
            f"key='{self._key}', value='{self._value}', config_name='{self._config_name}', types='{extra_msg}'"
        )


class NotchOutOfRangeError(ConfigError):
    """Raise when an acceptor reports a notch outside of its declared notch range."""

    _error_code = "NOTCH_OUT_OF_RANGE"

    def __init__(self, acceptor_name: str, notch: int, n_notches: int):
        super().__init__("acceptors", acceptor_name)
        self._detail_msg = (
            f"Acceptor '{acceptor_name}' returned notch {notch}, "
            f"but only declares {n_notches} notches."
        )


class EmptyIndexError(ConfigError):
    """Raise when the fragment index or the peptide list is empty."""

    _error_code = "EMPTY_INDEX"

    def __init__(self, detail_msg: str = "The fragment index contains no entries."):
        super().__init__("fragment_index", "", "", detail_msg)


class EmptyScanListError(ConfigError):
    """Raise when a search is started without any scans."""

    _error_code = "EMPTY_SCAN_LIST"

    def __init__(self, detail_msg: str = "No scans were provided to the search."):
        super().__init__("scans", "", "", detail_msg)
