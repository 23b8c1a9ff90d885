"""In-page script wiring the connector's webview channel to the host bridge."""

# Runs on every new document (init script) and again on demand in the current
# one. The guard flag keeps repeated runs free of duplicate wiring.
BRIDGE_SCRIPT = r"""
(() => {
  if (window.__cliskBridgeInstalled) {
    return false;
  }
  window.__cliskBridgeInstalled = true;

  const forward = (message) => {
    let data = message;
    if (typeof message === 'string') {
      try {
        data = JSON.parse(message);
      } catch (err) {
        return;
      }
    }
    if (data && data.type === '@post-me' && typeof window.sendToPlaywright === 'function') {
      window.sendToPlaywright(data);
    }
  };

  window.ReactNativeWebView = window.ReactNativeWebView || {};
  window.ReactNativeWebView.postMessage = forward;

  window.cliskLog = (level, ...args) => {
    if (typeof window.sendPageLog === 'function') {
      window.sendPageLog(level, ...args.map((arg) => {
        if (typeof arg === 'string') {
          return arg;
        }
        try {
          return JSON.stringify(arg);
        } catch (err) {
          return String(arg);
        }
      }));
    }
  };

  window.addEventListener('error', (event) => {
    window.cliskLog('error', event.message || 'uncaught error');
  });
  return true;
})();
"""

BLOCK_INTERACTIONS_SCRIPT = r"""
() => {
  if (document.getElementById('__clisk_blocker')) {
    return false;
  }
  const blocker = document.createElement('div');
  blocker.id = '__clisk_blocker';
  blocker.style.cssText = 'position:fixed;inset:0;z-index:2147483647;background:transparent;';
  (document.body || document.documentElement).appendChild(blocker);
  return true;
}
"""

UNBLOCK_INTERACTIONS_SCRIPT = r"""
() => {
  const blocker = document.getElementById('__clisk_blocker');
  if (!blocker) {
    return false;
  }
  blocker.remove();
  return true;
}
"""
