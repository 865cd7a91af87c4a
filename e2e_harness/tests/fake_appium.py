"""
In-process stand-in for an Appium server driving the React Native demo app.

Only what the harness talks to is emulated: session lifecycle, element lookup
and state, click/clear/value, W3C pointer actions, `mobile:` gesture commands,
page source and screenshots.
"""

import base64
import itertools
import re
import socket
import uuid
from dataclasses import dataclass, field
from xml.etree import ElementTree

from flask import Flask, jsonify, request

W3C_ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"
WINDOW = {"x": 0, "y": 0, "width": 414, "height": 896}
BACK_AREA = (0, 40, 60, 100)
LAST_PAGE = 3
LAST_SLIDE = 2
OFFSCREEN_Y = 2000
FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-screenshot"

_UIAUTOMATOR_TEXT = re.compile(r'^new UiSelector\(\)\.text\("(.*)"\)$')
_PREDICATE_LABEL = re.compile(r'^label == "(.*)"$')


def unused_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _rect(x, y, width, height):
    return {"x": x, "y": y, "width": width, "height": height}


def _inside(rect, point):
    x, y = point
    return rect["x"] <= x < rect["x"] + rect["width"] and rect["y"] <= y < rect["y"] + rect["height"]


@dataclass
class AppState:
    platform: str
    screen: str = "login"
    username: str = ""
    password: str = ""
    switch_on: bool = False
    slide: int = 0
    page: int = 0

    def elements(self):
        """key -> (text, rect, displayed) for the current screen."""
        items = {"app-root": ("", dict(WINDOW), True)}
        if self.screen == "login":
            items["username-textinput"] = (self.username or "username", _rect(40, 300, 334, 50), True)
            items["password-textinput"] = (
                "•" * len(self.password) if self.password else "password",
                _rect(40, 370, 334, 50),
                True,
            )
            items["login-button"] = ("Login", _rect(40, 440, 334, 50), True)
            items["reset-button"] = ("Reset", _rect(40, 510, 334, 50), True)
        elif self.screen == "form":
            items["switch"] = ("1" if self.switch_on else "0", _rect(40, 200, 60, 40), True)
            state = "OFF" if self.switch_on else "ON"
            items["switch-text"] = (f"Click to turn the switch {state}", _rect(110, 200, 260, 40), True)
            items["picker-select"] = ("Please select a language", _rect(40, 300, 334, 50), True)
            items["general-info-button"] = ("General info", _rect(40, 400, 334, 50), True)
        elif self.screen == "profile":
            items["slides"] = (f"Slide {self.slide + 1}", _rect(0, 100, 414, 200), True)
            items["scrollviewarea"] = ("", _rect(0, 320, 414, 560), True)
            for index in range(LAST_PAGE + 1):
                shown = self.page == index
                y = 400 if shown else OFFSCREEN_Y
                items[f"section-{index + 1}"] = (f"Section {index + 1}", _rect(0, y, 414, 200), shown)
            at_end = self.page == LAST_PAGE
            items["endscreen"] = ("End of screen", _rect(0, 700 if at_end else OFFSCREEN_Y, 414, 60), at_end)
        return items

    def click(self, key):
        if key == "login-button":
            self.screen = "form"
        elif key == "reset-button":
            self.username = ""
            self.password = ""
        elif key == "switch":
            self.switch_on = not self.switch_on
        elif key == "general-info-button":
            self.screen = "profile"

    def scroll(self, direction):
        if direction == "down":
            self.page = min(self.page + 1, LAST_PAGE)
        elif direction == "up":
            self.page = max(self.page - 1, 0)

    def swipe(self, direction):
        if direction == "left":
            self.slide = min(self.slide + 1, LAST_SLIDE)
        elif direction == "right":
            self.slide = max(self.slide - 1, 0)


@dataclass
class FakeDevice:
    """Shared state between the Flask app and the tests that inspect it."""

    sessions: dict = field(default_factory=dict)
    created: list = field(default_factory=list)
    deleted: list = field(default_factory=list)
    actions_log: list = field(default_factory=list)
    execute_log: list = field(default_factory=list)
    find_log: list = field(default_factory=list)
    events: list = field(default_factory=list)
    # key -> number of lookups that still come back empty
    find_delays: dict = field(default_factory=dict)
    reject_sessions: str = ""
    fail_delete: bool = False
    fail_screenshot: bool = False
    _counter: itertools.count = field(default_factory=itertools.count)

    @property
    def open_sessions(self):
        return list(self.sessions)


def _error(status, error, message=""):
    return jsonify({"value": {"error": error, "message": message or error}}), status


def _element_payload(session_id, screen, key):
    return {W3C_ELEMENT_KEY: f"{session_id}:{screen}:{key}"}


def _page_source(state):
    if state.platform == "Android":
        root = ElementTree.Element("hierarchy")
        for key, (text, rect, shown) in state.elements().items():
            ElementTree.SubElement(
                root,
                "android.view.View",
                {
                    "content-desc": key,
                    "text": text,
                    "displayed": "true" if shown else "false",
                    "bounds": f"[{rect['x']},{rect['y']}][{rect['x'] + rect['width']},{rect['y'] + rect['height']}]",
                },
            )
    else:
        root = ElementTree.Element("AppiumAUT")
        app = ElementTree.SubElement(root, "XCUIElementTypeApplication", {"name": "TestForE2E"})
        for key, (text, rect, shown) in state.elements().items():
            ElementTree.SubElement(
                app,
                "XCUIElementTypeOther",
                {
                    "name": key,
                    "label": text,
                    "visible": "true" if shown else "false",
                    "x": str(rect["x"]),
                    "y": str(rect["y"]),
                },
            )
    return ElementTree.tostring(root, encoding="unicode")


def _interpret_pointer_actions(state, sources):
    """Turn a W3C touch sequence into a tap, scroll or swipe on the demo app."""
    position = (0, 0)
    down_at = None
    for source in sources:
        for step in source.get("actions", []):
            kind = step.get("type")
            if kind == "pointerMove":
                position = (int(step["x"]), int(step["y"]))
            elif kind == "pointerDown":
                down_at = position
            elif kind == "pointerUp" and down_at is not None:
                _apply_touch(state, down_at, position)
                down_at = None


def _apply_touch(state, start, end):
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    elements = state.elements()
    if abs(dx) < 10 and abs(dy) < 10:
        x1, y1, x2, y2 = BACK_AREA
        if state.screen == "profile" and x1 <= start[0] < x2 and y1 <= start[1] < y2:
            state.screen = "form"
        return
    if state.screen != "profile":
        return
    if _inside(elements["scrollviewarea"][1], start) and abs(dy) > abs(dx) and abs(dy) > 100:
        # Finger moving up reveals content below.
        state.scroll("down" if dy < 0 else "up")
    elif _inside(elements["slides"][1], start) and abs(dx) > abs(dy) and abs(dx) > 100:
        state.swipe("left" if dx < 0 else "right")


def create_app(device):
    app = Flask(__name__)

    def _state(session_id):
        return device.sessions.get(session_id)

    def _resolve(state, session_id, element_id):
        try:
            owner, screen, key = element_id.split(":", 2)
        except ValueError:
            return None, _error(404, "no such element")
        if owner != session_id:
            return None, _error(404, "no such element")
        if screen != state.screen or key not in state.elements():
            return None, _error(404, "stale element reference", f"{key} is not on the {state.screen} screen")
        return key, None

    @app.route("/session", methods=["POST"])
    def new_session():
        if device.reject_sessions:
            return _error(500, "session not created", device.reject_sessions)
        body = request.get_json() or {}
        caps = (body.get("capabilities") or {}).get("alwaysMatch") or {}
        platform = caps.get("platformName")
        if platform not in ("iOS", "Android"):
            return _error(400, "session not created", "platformName must be iOS or Android")
        session_id = f"{next(device._counter)}-{uuid.uuid4().hex[:8]}"
        device.sessions[session_id] = AppState(platform=platform)
        device.created.append({"id": session_id, "capabilities": caps})
        device.events.append(("open", session_id))
        return jsonify({"value": {"sessionId": session_id, "capabilities": caps}})

    @app.route("/session/<session_id>", methods=["DELETE"])
    def delete_session(session_id):
        if device.fail_delete:
            return _error(500, "unknown error", "device went away")
        if device.sessions.pop(session_id, None) is None:
            return _error(404, "invalid session id")
        device.deleted.append(session_id)
        device.events.append(("close", session_id))
        return jsonify({"value": None})

    @app.before_request
    def _require_known_session():
        args = request.view_args or {}
        if "session_id" in args and request.endpoint not in ("delete_session",):
            if _state(args["session_id"]) is None:
                return _error(404, "invalid session id")
        return None

    @app.route("/session/<session_id>/elements", methods=["POST"])
    def find_elements(session_id):
        state = _state(session_id)
        body = request.get_json() or {}
        using, value = body.get("using"), body.get("value") or ""
        device.find_log.append((using, value))
        elements = state.elements()

        if using in ("accessibility id", "id"):
            matches = [value] if value in elements else []
        elif using == "-android uiautomator":
            m = _UIAUTOMATOR_TEXT.match(value)
            if not m:
                return _error(400, "invalid selector", value)
            wanted = m.group(1).replace('\\"', '"')
            matches = [k for k, (text, _, _) in elements.items() if text == wanted]
        elif using == "-ios predicate string":
            m = _PREDICATE_LABEL.match(value)
            if not m:
                return _error(400, "invalid selector", value)
            wanted = m.group(1).replace('\\"', '"')
            matches = [k for k, (text, _, _) in elements.items() if text == wanted]
        else:
            return _error(400, "invalid selector", f"unsupported strategy {using!r}")

        visible_matches = []
        for key in matches:
            remaining = device.find_delays.get(key, 0)
            if remaining > 0:
                device.find_delays[key] = remaining - 1
                continue
            visible_matches.append(_element_payload(session_id, state.screen, key))
        return jsonify({"value": visible_matches})

    @app.route("/session/<session_id>/element/<element_id>/<prop>", methods=["GET"])
    def element_property(session_id, element_id, prop):
        state = _state(session_id)
        key, err = _resolve(state, session_id, element_id)
        if err:
            return err
        text, rect, shown = state.elements()[key]
        if prop == "text":
            return jsonify({"value": text})
        if prop == "rect":
            return jsonify({"value": rect})
        if prop == "displayed":
            return jsonify({"value": shown})
        return _error(404, "unknown command", prop)

    @app.route("/session/<session_id>/element/<element_id>/<command>", methods=["POST"])
    def element_command(session_id, element_id, command):
        state = _state(session_id)
        key, err = _resolve(state, session_id, element_id)
        if err:
            return err
        if command == "click":
            state.click(key)
        elif command == "clear":
            if key == "username-textinput":
                state.username = ""
            elif key == "password-textinput":
                state.password = ""
        elif command == "value":
            body = request.get_json() or {}
            typed = body.get("text") or "".join(body.get("value") or [])
            if key == "username-textinput":
                state.username += typed
            elif key == "password-textinput":
                state.password += typed
        else:
            return _error(404, "unknown command", command)
        return jsonify({"value": None})

    @app.route("/session/<session_id>/actions", methods=["POST", "DELETE"])
    def actions(session_id):
        if request.method == "DELETE":
            return jsonify({"value": None})
        state = _state(session_id)
        sources = (request.get_json() or {}).get("actions") or []
        device.actions_log.append(sources)
        _interpret_pointer_actions(state, sources)
        return jsonify({"value": None})

    @app.route("/session/<session_id>/execute/sync", methods=["POST"])
    def execute(session_id):
        state = _state(session_id)
        body = request.get_json() or {}
        script = body.get("script")
        args = (body.get("args") or [{}])[0]
        device.execute_log.append((script, args))
        key, err = _resolve(state, session_id, args.get("elementId", ""))
        if err:
            return err
        if script in ("mobile: scroll", "mobile: scrollGesture") and key == "scrollviewarea":
            state.scroll(args.get("direction"))
        elif script in ("mobile: swipe", "mobile: swipeGesture") and key == "slides":
            state.swipe(args.get("direction"))
        elif not script or not script.startswith("mobile: "):
            return _error(400, "unknown method", str(script))
        return jsonify({"value": None})

    @app.route("/session/<session_id>/source", methods=["GET"])
    def source(session_id):
        return jsonify({"value": _page_source(_state(session_id))})

    @app.route("/session/<session_id>/screenshot", methods=["GET"])
    def screenshot(session_id):
        if device.fail_screenshot:
            return _error(500, "unable to capture screen", "screen is locked")
        return jsonify({"value": base64.b64encode(FAKE_PNG).decode("ascii")})

    @app.route("/session/<session_id>/window/rect", methods=["GET"])
    def window_rect(session_id):
        return jsonify({"value": dict(WINDOW)})

    return app
