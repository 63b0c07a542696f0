"""COM driver for the Sage 100 Business Object Interface.

Drives ``ProvideX.Script`` through pywin32 late binding. This is the only
module that touches COM: numeric return codes, ``sLastErrorMsg`` and
``com_error`` are translated here into ``CallResult`` / driver exceptions.

Threading: every thread that touches a COM object must have joined the
multithreaded apartment first. Pooled sessions move between worker threads,
so each call checks a thread-local flag and initializes COM when needed.

Windows only. pywin32 is imported lazily so the package imports everywhere.
"""

import threading
from typing import Any, Dict

from connectors.record_session import (
    CallResult,
    DriverType,
    ExternalCallError,
    ObjectUnavailable,
    RecordDriver,
    RecordObject,
    ScriptEngine,
    UnsupportedCapability,
    register_driver,
)
from core.observability.logging import get_logger

logger = get_logger(__name__)

PROGID = "ProvideX.Script"

# HRESULT for "Unknown name" - the object has no such method
DISP_E_UNKNOWNNAME = -2147352570

_com_state = threading.local()


def _load_pywin32():
    try:
        import pythoncom
        import pywintypes
        import win32com.client
    except ImportError as e:
        raise ExternalCallError(
            f"The COM driver requires pywin32 on Windows: {e}", method="import"
        ) from e
    return pythoncom, pywintypes, win32com.client


def ensure_com_initialized() -> None:
    """Join the MTA once per thread."""
    if getattr(_com_state, "initialized", False):
        return
    pythoncom, _, _ = _load_pywin32()
    pythoncom.CoInitializeEx(pythoncom.COINIT_MULTITHREADED)
    _com_state.initialized = True


def _hresult(error: Exception) -> int:
    args = getattr(error, "args", ())
    return args[0] if args and isinstance(args[0], int) else 0


def _describe(error: Exception) -> str:
    """Pull the most useful text out of a pywintypes.com_error."""
    args = getattr(error, "args", ())
    if len(args) >= 3 and args[2]:
        excepinfo = args[2]
        if len(excepinfo) > 2 and excepinfo[2]:
            return str(excepinfo[2])
    if len(args) >= 2 and args[1]:
        return str(args[1])
    return str(error)


class ComRecordObject(RecordObject):
    """A BOI object (SY_Session, *_svc, *_bus, oLines) behind a COM dispatch."""

    def __init__(self, dispatch: Any, name: str = "", owned: bool = True):
        self._dispatch = dispatch
        self.name = name
        self._owned = owned

    # -------------------------------------------------------------------------
    # Raw invocation
    # -------------------------------------------------------------------------

    def _raw(self, method: str, *args: Any) -> Any:
        if self._dispatch is None:
            raise ExternalCallError(f"{self.name}.{method} called on a closed object", method=method)
        ensure_com_initialized()
        _, pywintypes, _ = _load_pywin32()
        try:
            return getattr(self._dispatch, method)(*args)
        except pywintypes.com_error as e:
            if _hresult(e) == DISP_E_UNKNOWNNAME:
                raise UnsupportedCapability(method, self.name) from e
            raise ExternalCallError(
                f"{self.name}.{method} raised: {_describe(e)}",
                method=method,
                hresult=_hresult(e),
            ) from e
        except AttributeError as e:
            raise UnsupportedCapability(method, self.name) from e

    def _translate(self, method: str, raw: Any) -> CallResult:
        """Numeric code (plus out-parameters) -> CallResult."""
        if isinstance(raw, tuple):
            code, outs = raw[0], raw[1:]
            value = outs[0] if len(outs) == 1 else (outs or None)
        else:
            code, value = raw, raw
        try:
            ok = int(code or 0) != 0
        except (TypeError, ValueError):
            ok = False
        if ok:
            return CallResult.success(value, method=method)
        return CallResult.failure(self.last_error_message(), method=method)

    def call(self, method: str, *args: Any) -> CallResult:
        return self._translate(method, self._raw(method, *args))

    # -------------------------------------------------------------------------
    # RecordObject
    # -------------------------------------------------------------------------

    def get_value(self, field_name: str) -> CallResult:
        # Out-parameter comes back as the second tuple element
        placeholder = "" if field_name.endswith("$") else 0
        return self.call("nGetValue", field_name, placeholder)

    def set_value(self, field_name: str, value: Any) -> CallResult:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = float(value)
        return self.call("nSetValue", field_name, value)

    def move_first(self) -> CallResult:
        return self.call("nMoveFirst")

    def move_next(self) -> CallResult:
        return self.call("nMoveNext")

    def set_key(self, key: str) -> CallResult:
        return self.call("nSetKey", key)

    def write(self) -> CallResult:
        return self.call("nWrite")

    def find(self, key: Dict[str, Any]) -> CallResult:
        for field_name, value in key.items():
            result = self.call("nSetKeyValue", field_name, value)
            if not result.ok:
                return result
        return self.call("nFind")

    def child(self, attribute: str) -> RecordObject:
        if self._dispatch is None:
            raise ExternalCallError(f"{self.name}.{attribute} read on a closed object", method=attribute)
        ensure_com_initialized()
        _, pywintypes, _ = _load_pywin32()
        try:
            dispatch = getattr(self._dispatch, attribute)
        except pywintypes.com_error as e:
            raise ExternalCallError(
                f"{self.name}.{attribute} raised: {_describe(e)}",
                method=attribute,
                hresult=_hresult(e),
            ) from e
        except AttributeError as e:
            raise UnsupportedCapability(attribute, self.name) from e
        if dispatch is None:
            raise ObjectUnavailable(f"{self.name}.{attribute} is not available", method=attribute)
        # Child objects are owned by their parent
        return ComRecordObject(dispatch, name=f"{self.name}.{attribute}", owned=False)

    def last_error_message(self) -> str:
        if self._dispatch is None:
            return ""
        try:
            return str(getattr(self._dispatch, "sLastErrorMsg") or "")
        except Exception as e:
            logger.debug(f"Could not read sLastErrorMsg on {self.name}: {e}")
            return ""

    def ping(self) -> bool:
        if self._dispatch is None:
            return False
        ensure_com_initialized()
        _, pywintypes, _ = _load_pywin32()
        try:
            getattr(self._dispatch, "sLastErrorMsg")
        except pywintypes.com_error as e:
            raise ExternalCallError(
                f"{self.name} liveness probe failed: {_describe(e)}",
                method="sLastErrorMsg",
                hresult=_hresult(e),
            ) from e
        return True

    def close(self) -> None:
        dispatch, self._dispatch = self._dispatch, None
        if dispatch is None or not self._owned:
            return
        try:
            ensure_com_initialized()
            dispatch.DropObject()
        except Exception as e:
            logger.debug(f"DropObject failed on {self.name}: {e}")


class ComScriptEngine(ScriptEngine):
    """An initialized ``ProvideX.Script`` instance."""

    def __init__(self, dispatch: Any, path: str):
        self._dispatch = dispatch
        self.path = path

    def new_object(self, type_name: str, *args: Any) -> RecordObject:
        if self._dispatch is None:
            raise ExternalCallError("NewObject called on a closed script engine", method="NewObject")
        ensure_com_initialized()
        _, pywintypes, _ = _load_pywin32()

        # Session arguments are passed as their raw dispatch
        raw_args = [a._dispatch if isinstance(a, ComRecordObject) else a for a in args]
        try:
            dispatch = self._dispatch.NewObject(type_name, *raw_args)
        except pywintypes.com_error as e:
            raise ExternalCallError(
                f"NewObject({type_name}) raised: {_describe(e)}",
                method="NewObject",
                hresult=_hresult(e),
            ) from e
        if dispatch is None:
            raise ObjectUnavailable(
                f"Failed to create {type_name} object - NewObject returned nothing",
                method="NewObject",
            )
        return ComRecordObject(dispatch, name=type_name)

    def close(self) -> None:
        self._dispatch = None


@register_driver(DriverType.COM.value)
class ComDriver(RecordDriver):
    """Creates ``ProvideX.Script`` engines via pywin32."""

    def __init__(self, progid: str = PROGID):
        self.progid = progid

    def open(self, path: str) -> ScriptEngine:
        ensure_com_initialized()
        _, pywintypes, client = _load_pywin32()
        try:
            dispatch = client.Dispatch(self.progid)
        except pywintypes.com_error as e:
            raise ExternalCallError(
                f"Could not create {self.progid}: {_describe(e)}",
                method="Dispatch",
                hresult=_hresult(e),
            ) from e

        logger.info(f"Initializing ProvideX with path: {path}")
        try:
            dispatch.Init(path)
        except pywintypes.com_error as e:
            raise ExternalCallError(
                f"{self.progid}.Init({path}) failed: {_describe(e)}",
                method="Init",
                hresult=_hresult(e),
            ) from e
        return ComScriptEngine(dispatch, path)
