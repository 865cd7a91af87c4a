import pytest

from e2e_harness.mobile.page_source import extract_nodes, extract_visible_strings, ui_snapshot

ANDROID_XML = """<hierarchy>
  <android.widget.FrameLayout displayed="true">
    <android.widget.TextView text="Section 1" content-desc="section-1" displayed="true"/>
    <android.widget.TextView text="Section 2" content-desc="section-2" displayed="false"/>
    <android.widget.Button text="Login" content-desc="login-button" displayed="true"/>
    <android.widget.TextView text="Login" displayed="true"/>
  </android.widget.FrameLayout>
</hierarchy>
"""

IOS_XML = """<AppiumAUT>
  <XCUIElementTypeApplication name="TestForE2E" label="TestForE2E" visible="true">
    <XCUIElementTypeStaticText name="endscreen" label="End of screen" visible="false"/>
    <XCUIElementTypeButton name="login-button" label="Login" value="Login" visible="true"/>
  </XCUIElementTypeApplication>
</AppiumAUT>
"""


def test_android_strings_skip_hidden_nodes_and_duplicates():
    assert extract_visible_strings(ANDROID_XML) == ["Section 1", "section-1", "Login", "login-button"]


def test_ios_strings_use_label_and_visible():
    assert extract_visible_strings(IOS_XML) == ["TestForE2E", "Login"]


def test_nodes_carry_tag_and_visibility():
    nodes = extract_nodes(IOS_XML)
    endscreen = next(n for n in nodes if n.label == "End of screen")
    assert endscreen.tag == "XCUIElementTypeStaticText"
    assert endscreen.visible is False
    assert len(extract_nodes(IOS_XML, limit=2)) == 2


def test_snapshot_changes_only_with_visible_content():
    scrolled = ANDROID_XML.replace('content-desc="section-2" displayed="false"', 'content-desc="section-2" displayed="true"')
    assert ui_snapshot(ANDROID_XML) == ui_snapshot(ANDROID_XML)
    assert ui_snapshot(ANDROID_XML) != ui_snapshot(scrolled)


def test_empty_and_invalid_sources():
    assert extract_visible_strings("   ") == []
    with pytest.raises(ValueError):
        extract_nodes("<hierarchy><unclosed></hierarchy>")
