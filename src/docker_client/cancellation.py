"""
Cooperative cancellation for blocking daemon calls
"""

import logging
import threading
from typing import Callable, List

from .exceptions import CancelledError

logger = logging.getLogger(__name__)


class CancelToken:
    """
    Cancellation signal shared between a blocking call and the thread that
    wants to abort it.
    
    Once cancelled a token stays cancelled, so the caller can still observe
    the signal after the aborted call has unwound.
    """
    
    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
    
    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
    
    def cancel(self):
        """Request cancellation and run registered abort callbacks"""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")
    
    def raise_if_cancelled(self):
        if self._event.is_set():
            raise CancelledError("Operation cancelled")
    
    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback to run on cancellation
        
        The callback runs immediately if the token is already cancelled.
        
        Returns:
            Function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                
                def unregister():
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)
                
                return unregister
        
        callback()
        return lambda: None
    
    def wait(self, timeout=None) -> bool:
        """Block until cancelled or timeout; returns the cancelled state"""
        return self._event.wait(timeout)
    
    def __repr__(self):
        return f"<CancelToken: {'cancelled' if self.cancelled else 'active'}>"
