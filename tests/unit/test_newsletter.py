"""Tests for newsletter dispatch."""
import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError, ValidationError
from src.models.blog import Blog
from src.models.newsletter import SubscriberStatus
from src.services.newsletter import NewsletterDispatcher, matches_blog_categories
from tests.factories import FakeEmailService, make_subscriber


class CountingSleep:
    """Replaces asyncio.sleep inside the dispatcher."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class OverlapTrackingMailer(FakeEmailService):
    """Holds every send open briefly and records when each one starts and ends."""

    def __init__(self):
        super().__init__()
        self.events: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send_blog_notification(self, subscriber, blog) -> None:
        self.events.append(("start", subscriber.email))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        self.events.append(("end", subscriber.email))
        await super().send_blog_notification(subscriber, blog)


@pytest.fixture
def fake_sleep(monkeypatch) -> CountingSleep:
    sleeper = CountingSleep()
    monkeypatch.setattr("src.services.newsletter.asyncio.sleep", sleeper)
    return sleeper


class TestMatchesBlogCategories:
    """Test category matching."""

    @pytest.mark.parametrize(
        "preferred,blog_categories,expected",
        [
            ([], ["python"], True),
            (None, ["python"], True),
            (["python"], [], True),
            (["python"], ["Python", "devops"], True),
            (["rust"], ["python"], False),
        ],
    )
    def test_matching(self, preferred, blog_categories, expected):
        assert matches_blog_categories(preferred, blog_categories) is expected


class TestDispatch:
    """Test recipient selection, batching and counting."""

    @pytest.mark.asyncio
    async def test_only_matching_active_subscribers(
        self, db_session: AsyncSession, mailer: FakeEmailService, published_blog: Blog
    ):
        """No-preference and overlapping subscribers receive the blog, others do not."""
        await make_subscriber(db_session, "a@example.com")
        await make_subscriber(db_session, "b@example.com", categories=["javascript"])
        await make_subscriber(db_session, "c@example.com", categories=["rust"])
        await make_subscriber(db_session, "d@example.com", status=SubscriberStatus.PENDING)
        await make_subscriber(db_session, "e@example.com", status=SubscriberStatus.UNSUBSCRIBED)

        dispatcher = NewsletterDispatcher(db_session, mailer, batch_delay=0)
        result = await dispatcher.dispatch(published_blog)

        assert result.total_recipients == 2
        assert sorted(mailer.recipients("blog")) == ["a@example.com", "b@example.com"]

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(
        self, db_session: AsyncSession, mailer: FakeEmailService, published_blog: Blog
    ):
        """sent + errors equals recipients; only delivered mail bumps counters."""
        subscribers = [
            await make_subscriber(db_session, f"reader{i}@example.com") for i in range(5)
        ]
        mailer.fail_for.update({"reader1@example.com", "reader3@example.com"})

        dispatcher = NewsletterDispatcher(db_session, mailer, batch_size=2, batch_delay=0)
        result = await dispatcher.dispatch(published_blog)

        assert result.total_recipients == 5
        assert result.sent_count == 3
        assert result.error_count == 2
        for subscriber in subscribers:
            await db_session.refresh(subscriber)
        sent = {s.email: s.emails_sent for s in subscribers}
        assert sent == {
            "reader0@example.com": 1,
            "reader1@example.com": 0,
            "reader2@example.com": 1,
            "reader3@example.com": 0,
            "reader4@example.com": 1,
        }
        assert subscribers[0].last_email_sent is not None
        assert subscribers[1].last_email_sent is None

    @pytest.mark.asyncio
    async def test_sleeps_between_batches_only(
        self,
        db_session: AsyncSession,
        mailer: FakeEmailService,
        published_blog: Blog,
        fake_sleep: CountingSleep,
    ):
        """Twenty-five recipients make three batches and two pauses."""
        for i in range(25):
            await make_subscriber(db_session, f"batch{i}@example.com")

        dispatcher = NewsletterDispatcher(db_session, mailer, batch_size=10, batch_delay=1.0)
        result = await dispatcher.dispatch(published_blog)

        assert result.sent_count == 25
        assert fake_sleep.calls == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_batch_sends_overlap_and_batches_do_not(
        self, db_session: AsyncSession, published_blog: Blog
    ):
        """Sends within a batch run together; the next batch waits for all of them."""
        emails = [f"overlap{i}@example.com" for i in range(5)]
        for email in emails:
            await make_subscriber(db_session, email)
        mailer = OverlapTrackingMailer()

        dispatcher = NewsletterDispatcher(db_session, mailer, batch_size=2, batch_delay=0)
        result = await dispatcher.dispatch(published_blog)

        assert result.sent_count == 5
        assert mailer.max_in_flight == 2
        batches = [emails[0:2], emails[2:4], emails[4:]]
        for current, following in zip(batches, batches[1:]):
            last_end = max(mailer.events.index(("end", email)) for email in current)
            first_start = min(mailer.events.index(("start", email)) for email in following)
            assert last_end < first_start

    @pytest.mark.asyncio
    async def test_no_recipients(
        self, db_session: AsyncSession, mailer: FakeEmailService, published_blog: Blog
    ):
        dispatcher = NewsletterDispatcher(db_session, mailer)
        result = await dispatcher.dispatch(published_blog)

        assert (result.total_recipients, result.sent_count, result.error_count) == (0, 0, 0)
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_test_email_touches_no_subscriber(
        self, db_session: AsyncSession, mailer: FakeEmailService, published_blog: Blog
    ):
        """A test send goes to one address and leaves counters alone."""
        subscriber = await make_subscriber(db_session, "real@example.com")

        dispatcher = NewsletterDispatcher(db_session, mailer)
        result = await dispatcher.dispatch(published_blog, test_email="Owner@Example.com")

        assert result.total_recipients == 1
        assert mailer.recipients("blog") == ["owner@example.com"]
        await db_session.refresh(subscriber)
        assert subscriber.emails_sent == 0

    def test_rejects_zero_batch_size(self, mailer: FakeEmailService):
        with pytest.raises(ValueError):
            NewsletterDispatcher(None, mailer, batch_size=0)


class TestSendNewsletter:
    """Test the admin send entry point."""

    @pytest.mark.asyncio
    async def test_requires_blog_id(self, db_session: AsyncSession, mailer: FakeEmailService):
        with pytest.raises(ValidationError):
            await NewsletterDispatcher(db_session, mailer).send_newsletter(None)

    @pytest.mark.asyncio
    async def test_missing_blog(self, db_session: AsyncSession, mailer: FakeEmailService):
        with pytest.raises(NotFoundError):
            await NewsletterDispatcher(db_session, mailer).send_newsletter(404)

    @pytest.mark.asyncio
    async def test_endpoint_sends_to_subscribers(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        mailer: FakeEmailService,
        published_blog: Blog,
        admin_headers: dict,
    ):
        await make_subscriber(db_session, "fan@example.com")

        response = await client.post(
            "/api/v1/subscriptions/send-newsletter",
            json={"blogId": published_blog.id},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["message"] == "Newsletter sent successfully"
        assert data["totalRecipients"] == 1
        assert data["sentCount"] == 1
        assert data["errorCount"] == 0
        assert data["blogTitle"] == published_blog.title

    @pytest.mark.asyncio
    async def test_endpoint_test_email(
        self,
        client: AsyncClient,
        mailer: FakeEmailService,
        published_blog: Blog,
        admin_headers: dict,
    ):
        response = await client.post(
            "/api/v1/subscriptions/send-newsletter",
            json={"blogId": published_blog.id, "testEmail": "owner@example.com"},
            headers=admin_headers,
        )

        assert response.json()["data"]["message"] == "Test email sent successfully"
        assert mailer.recipients("blog") == ["owner@example.com"]

    @pytest.mark.asyncio
    async def test_endpoint_no_subscribers(
        self, client: AsyncClient, published_blog: Blog, admin_headers: dict
    ):
        response = await client.post(
            "/api/v1/subscriptions/send-newsletter",
            json={"blogId": published_blog.id},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["message"] == "No active subscribers found"

    @pytest.mark.asyncio
    async def test_endpoint_missing_blog(self, client: AsyncClient, admin_headers: dict):
        response = await client.post(
            "/api/v1/subscriptions/send-newsletter",
            json={"blogId": 404},
            headers=admin_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_endpoint_draft_blog(
        self, client: AsyncClient, draft_blog: Blog, admin_headers: dict
    ):
        response = await client.post(
            "/api/v1/subscriptions/send-newsletter",
            json={"blogId": draft_blog.id},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Blog must be published to send newsletter"

    @pytest.mark.asyncio
    async def test_endpoint_requires_admin(
        self, client: AsyncClient, published_blog: Blog, user_headers: dict
    ):
        response = await client.post(
            "/api/v1/subscriptions/send-newsletter",
            json={"blogId": published_blog.id},
            headers=user_headers,
        )

        assert response.status_code == 403
