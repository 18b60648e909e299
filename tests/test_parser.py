"""Tests for bulletin classification, locality extraction and matching."""

from quietwatch.core.models import BulletinKind
from quietwatch.processing.localities import is_base_match, normalize_locality
from quietwatch.processing.matcher import match_localities, match_monitored
from quietwatch.processing.parser import classify_bulletin, extract_localities, is_upcoming_warning

from tests.bulletins import ALERT_CENTRAL_NEGEV, STAND_DOWN_CENTRAL_NEGEV, UPCOMING_WARNING


SAFE_EXIT_WEST_NEGEV = """🚨 עדכון (28/2/2026) 13:31

ניתן לצאת מהמרחב המוגן אך יש להישאר בקרבתו
באזורים הבאים ניתן לצאת מהמרחב המוגן, אך יש להישאר בקרבתו.

אזור מערב הנגב
אופקים, אורים, אזור תעשייה נ.ע.מ, אשבול, נתיבות, פעמי תש''ז, תלמי ביל''ו

אזור עוטף עזה
אבשלום, ארז, בארי, כפר עזה, נחל עוז, שדרות, תקומה"""


class TestNormalizeLocality:
    def test_dash_variants_become_spaced_hyphen(self):
        assert normalize_locality("באר שבע–דרום") == "באר שבע - דרום"
        assert normalize_locality("באר שבע—דרום") == "באר שבע - דרום"
        assert normalize_locality("באר שבע־דרום") == "באר שבע - דרום"

    def test_whitespace_collapses(self):
        assert normalize_locality(" באר   שבע  -  מזרח ") == "באר שבע - מזרח"

    def test_idempotent(self):
        once = normalize_locality("באר שבע–צפון")
        assert normalize_locality(once) == once

    def test_empty(self):
        assert normalize_locality("   ") == ""


class TestBaseMatch:
    def test_exact(self):
        assert is_base_match("עומר", "עומר")

    def test_sub_area(self):
        assert is_base_match("באר שבע", "באר שבע - דרום")

    def test_prefix_without_separator_is_not_a_match(self):
        assert not is_base_match("באר", "באר שבע")
        assert not is_base_match("עומר", "עומרים")


class TestClassify:
    def test_alert(self):
        assert classify_bulletin(ALERT_CENTRAL_NEGEV) is BulletinKind.ALERT

    def test_stand_down(self):
        assert classify_bulletin(STAND_DOWN_CENTRAL_NEGEV) is BulletinKind.STAND_DOWN

    def test_upcoming_warning(self):
        assert is_upcoming_warning(UPCOMING_WARNING)
        assert classify_bulletin(UPCOMING_WARNING) is BulletinKind.UPCOMING_WARNING

    def test_stand_down_phrase_without_update_header_is_an_alert(self):
        text = "ירי רקטות וטילים\nניתן לצאת מהמרחב המוגן\nעומר"
        assert classify_bulletin(text) is BulletinKind.ALERT

    def test_upcoming_phrase_wins_over_stand_down(self):
        text = "🚨 עדכון\nניתן לצאת מהמרחב המוגן\nבדקות הקרובות צפויות להתקבל התרעות באזורך\nעומר"
        assert classify_bulletin(text) is BulletinKind.UPCOMING_WARNING


class TestExtractLocalities:
    def test_alert_lines_only(self):
        text = """ירי רקטות וטילים (28/2/2026) 11:08

אזור מרכז הנגב
אזור תעשייה עידן הנגב, אתר דודאים, גבעות בר, להב, להבים (45 שניות)
אשכולות, באר שבע - דרום, באר שבע - מזרח, באר שבע - מערב, באר שבע - צפון, עומר (דקה)

היכנסו למרחב המוגן."""
        localities = extract_localities(text)

        assert "עומר" in localities
        assert "באר שבע - דרום" in localities
        assert "אזור תעשייה עידן הנגב" in localities
        assert "אזור מרכז הנגב" not in localities
        assert "היכנסו למרחב המוגן." not in localities
        assert "ירי רקטות וטילים" not in localities
        assert "🚨 ירי רקטות וטילים" not in localities

    def test_first_seen_order_without_duplicates(self):
        text = "אזור מרכז הנגב\nעומר, להב (דקה)\nלהב, מיתר (דקה וחצי)"
        assert extract_localities(text) == ["עומר", "להב", "מיתר"]

    def test_upcoming_warning_yields_nothing(self):
        assert extract_localities(UPCOMING_WARNING) == []

    def test_stand_down_lines_without_brackets(self):
        localities = extract_localities(STAND_DOWN_CENTRAL_NEGEV)
        assert localities == [
            "באר שבע - דרום",
            "באר שבע - מזרח",
            "באר שבע - מערב",
            "באר שבע - צפון",
            "עומר",
        ]

    def test_unrecognized_text(self):
        assert extract_localities("hello world") == []


class TestMatchMonitored:
    def test_base_city_matching(self):
        text = "אזור מרכז הנגב\nאשכולות, באר שבע - דרום, באר שבע - מזרח, עומר (דקה)"

        result = match_monitored(text, ["עומר", "באר שבע", "כחל"])

        assert result.kind is BulletinKind.ALERT
        assert result.matches == {
            "עומר": ["עומר"],
            "באר שבע": ["באר שבע - דרום", "באר שבע - מזרח"],
        }
        assert "כחל" not in result.matches

    def test_upcoming_warning_is_ignored(self):
        result = match_monitored(UPCOMING_WARNING, ["עומר", "באר שבע"])

        assert result.kind is BulletinKind.UPCOMING_WARNING
        assert result.alerted_localities == []
        assert not result.matched

    def test_real_alert(self):
        result = match_monitored(ALERT_CENTRAL_NEGEV, ["עומר", "באר שבע"])

        assert result.kind is BulletinKind.ALERT
        assert "עומר" in result.alerted_localities
        assert result.matches["באר שבע"] == [
            "באר שבע - דרום",
            "באר שבע - מזרח",
            "באר שבע - מערב",
            "באר שבע - צפון",
        ]

    def test_real_stand_down(self):
        result = match_monitored(SAFE_EXIT_WEST_NEGEV, ["אופקים", "שדרות", "עומר"])

        assert result.kind is BulletinKind.STAND_DOWN
        assert set(result.matches) == {"אופקים", "שדרות"}

    def test_watch_list_is_normalized(self):
        result = match_monitored(ALERT_CENTRAL_NEGEV, [" באר  שבע–דרום "])
        assert result.matches == {"באר שבע - דרום": ["באר שבע - דרום"]}

    def test_match_localities_keeps_watch_list_order(self):
        matches = match_localities(["עומר", "להב"], ["להב", "עומר", "מיתר"])
        assert list(matches) == ["להב", "עומר"]
