"""Init script that aligns in-page navigator/WebGL values with a fingerprint.

Runs before any page script via ``context.add_init_script``.  playwright-stealth
covers the generic evasions; this script only pins values that must agree with
the fingerprint chosen for the attempt.
"""

from __future__ import annotations

import json

from streamhop.domain.entities.resolution import Fingerprint

# WebGL debug extension constants.
UNMASKED_VENDOR_WEBGL = 37445
UNMASKED_RENDERER_WEBGL = 37446

_TEMPLATE = """
(() => {
  const fp = __FP__;
  const define = (obj, prop, value) => {
    try {
      Object.defineProperty(obj, prop, { get: () => value, configurable: true });
    } catch (e) {}
  };

  define(Navigator.prototype, 'webdriver', undefined);
  define(Navigator.prototype, 'languages', Object.freeze(fp.languages.slice()));
  define(Navigator.prototype, 'language', fp.languages[0]);
  define(Navigator.prototype, 'platform', fp.platform);
  define(Navigator.prototype, 'hardwareConcurrency', fp.hardwareConcurrency);
  define(Navigator.prototype, 'deviceMemory', fp.deviceMemory);

  define(Screen.prototype, 'width', fp.screen.width);
  define(Screen.prototype, 'height', fp.screen.height);
  define(Screen.prototype, 'availWidth', fp.screen.availWidth);
  define(Screen.prototype, 'availHeight', fp.screen.availHeight);
  define(Screen.prototype, 'colorDepth', fp.screen.colorDepth);
  define(Screen.prototype, 'pixelDepth', fp.screen.colorDepth);

  const patchGl = (proto) => {
    if (!proto) return;
    const original = proto.getParameter;
    proto.getParameter = function (param) {
      if (param === __VENDOR__) return fp.webglVendor;
      if (param === __RENDERER__) return fp.webglRenderer;
      return original.call(this, param);
    };
  };
  patchGl(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
  patchGl(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);

  if (!window.chrome) {
    window.chrome = { runtime: {}, app: {}, csi: () => {}, loadTimes: () => {} };
  }

  const query = window.navigator.permissions && window.navigator.permissions.query;
  if (query) {
    window.navigator.permissions.query = (parameters) =>
      parameters && parameters.name === 'notifications'
        ? Promise.resolve({ state: Notification.permission })
        : query.call(window.navigator.permissions, parameters);
  }
})();
"""


def build_init_script(fp: Fingerprint) -> str:
    """Render the init script for *fp* (values are JSON-encoded, never interpolated raw)."""
    payload = {
        "languages": list(fp.languages),
        "platform": fp.platform,
        "hardwareConcurrency": fp.hardware_concurrency,
        "deviceMemory": fp.device_memory,
        "screen": {
            "width": fp.screen.width,
            "height": fp.screen.height,
            "availWidth": fp.screen.avail_width,
            "availHeight": fp.screen.avail_height,
            "colorDepth": fp.screen.color_depth,
        },
        "webglVendor": fp.webgl_vendor,
        "webglRenderer": fp.webgl_renderer,
    }
    return (
        _TEMPLATE.replace("__FP__", json.dumps(payload))
        .replace("__VENDOR__", str(UNMASKED_VENDOR_WEBGL))
        .replace("__RENDERER__", str(UNMASKED_RENDERER_WEBGL))
    )


# Chromium flags applied at launch.
LAUNCH_ARGS: tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--no-default-browser-check",
    "--no-first-run",
)
