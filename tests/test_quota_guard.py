import pytest

from models.quota_guard import check_quota, quota_message


class TestQuotaGuard:
    """Cumulative cap on stored photos"""

    @pytest.mark.parametrize("count,allowed", [
        (0, True),
        (1, True),
        (19, True),
        (20, False),
        (21, False),
    ])
    def test_default_cap(self, count, allowed):
        assert check_quota(count) is allowed

    def test_custom_limit(self):
        assert check_quota(4, limit=5)
        assert not check_quota(5, limit=5)

    def test_message_names_the_cap(self):
        assert quota_message() == "Upload limit exceeded. Maximum 20 photos allowed."
        assert "Maximum 3 photos" in quota_message(3)
