"""
Tests for account models.
"""

import pytest

from accounts.models import Collective, CollectiveType, PayoutMethodType
from accounts.tests.factories import (
    CollectiveFactory,
    HostFactory,
    PayoutMethodFactory,
    PlatformFactory,
)


@pytest.mark.django_db
class TestCollective:
    def test_get_platform(self, settings):
        settings.PLATFORM_COLLECTIVE_SLUG = "platform"
        platform = PlatformFactory()

        assert Collective.get_platform() == platform
        assert platform.is_platform is True
        assert CollectiveFactory().is_platform is False

    def test_get_platform_missing(self):
        with pytest.raises(Collective.DoesNotExist):
            Collective.get_platform()

    @pytest.mark.parametrize(
        "collective_type,expected",
        [
            (CollectiveType.EVENT, True),
            (CollectiveType.PROJECT, True),
            (CollectiveType.COLLECTIVE, False),
            (CollectiveType.FUND, False),
        ],
    )
    def test_is_child(self, collective_type, expected):
        assert Collective(type=collective_type).is_child is expected


@pytest.mark.django_db
class TestHostedCollectivesCount:
    def test_counts_active_approved_collectives_and_funds(self):
        host = HostFactory()
        CollectiveFactory(host=host)
        CollectiveFactory(host=host, type=CollectiveType.FUND)
        CollectiveFactory(host=host, is_active=False)
        CollectiveFactory(host=host, approved_at=None)
        CollectiveFactory(host=host, type=CollectiveType.EVENT)
        CollectiveFactory(host=HostFactory())

        assert host.hosted_collectives_count() == 2

    def test_host_hosting_itself_is_not_counted(self):
        host = HostFactory()
        host.host = host
        host.save()

        assert host.hosted_collectives_count() == 0

    def test_not_a_host(self):
        assert CollectiveFactory().hosted_collectives_count() is None


@pytest.mark.django_db
class TestPayoutMethod:
    def test_currency_from_data(self):
        method = PayoutMethodFactory(type=PayoutMethodType.BANK_ACCOUNT, data={"currency": "EUR"})

        assert method.currency == "EUR"

    def test_currency_missing(self):
        assert PayoutMethodFactory(type=PayoutMethodType.PAYPAL, data={}).currency is None
