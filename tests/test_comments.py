import asyncio

from conftest import FakeSessionProvider, settle

from cuizly_sync.core.subscriptions import SubscriptionManager
from cuizly_sync.resources.comments import CommentsResource


def comment(comment_id, user, day, rating=None, restaurant="r1", active=True):
    return {
        "id": comment_id,
        "user_id": user,
        "restaurant_id": restaurant,
        "comment_text": f"Texte {comment_id}",
        "rating": rating,
        "images": [],
        "is_active": active,
        "created_at": f"2026-10-{day:02d}T20:00:00+00:00",
    }


def seed(store):
    store.defaults["comments"] = {"is_active": True}
    store.seed(
        "comments",
        comment("c1", "u1", 1, rating=4),
        comment("c2", "u2", 2),
        comment("c3", "u1", 3, rating=5),
        comment("c4", "u3", 4, rating=1, active=False),
        comment("c5", "u3", 5, rating=1, restaurant="r2"),
    )
    store.seed("profiles", {"user_id": "u1", "first_name": "Ana", "last_name": "B", "username": "ana", "phone": "06"})


def make(store, sessions, settings, notifier, **kwargs):
    return CommentsResource(store, sessions, "r1", settings=settings, notifier=notifier, **kwargs)


def test_comments_with_authors_and_average(store, sessions, settings, notifier):
    seed(store)
    comments = make(store, sessions, settings, notifier)

    async def scenario():
        async with comments.mounted():
            return comments.comments, comments.total, comments.average_rating

    rows, total, average = asyncio.run(scenario())
    assert [c["id"] for c in rows] == ["c3", "c2", "c1"]
    assert rows[0]["profiles"] == {"user_id": "u1", "first_name": "Ana", "last_name": "B", "username": "ana"}
    assert rows[1]["profiles"] == {"first_name": "Consommateur", "last_name": "", "username": ""}
    assert total == 3
    assert average == 4.5


def test_no_comments_skips_profiles_lookup(store, sessions, settings, notifier):
    comments = make(store, sessions, settings, notifier)

    async def scenario():
        async with comments.mounted():
            return comments.comments, comments.average_rating

    assert asyncio.run(scenario()) == ([], 0.0)
    assert store.count("select", "profiles") == 0


def test_channels_on_comments_and_ratings(store, sessions, settings, notifier):
    seed(store)
    subscriptions = SubscriptionManager(store)
    comments = make(store, sessions, settings, notifier, subscriptions=subscriptions)

    async def scenario():
        async with comments.mounted():
            tables = sorted(c.table for c in store.open_channels)
            before = store.count("select", "comments")
            store.emit("ratings", "INSERT", new={"id": "x", "restaurant_id": "r1", "rating": 3})
            await settle()
            return tables, store.count("select", "comments") - before

    tables, reloads = asyncio.run(scenario())
    assert tables == ["comments", "ratings"]
    assert reloads == 1
    assert store.open_channels == []
    assert subscriptions.opened_total == subscriptions.closed_total == 2


def test_add_comment(store, sessions, settings, notifier):
    seed(store)
    comments = make(store, sessions, settings, notifier)

    async def scenario():
        async with comments.mounted():
            ok = await comments.add_comment("Excellent", 5, ["a.jpg"])
            return ok, comments.comments[0], comments.total

    ok, newest, total = asyncio.run(scenario())
    assert ok is True
    assert newest["comment_text"] == "Excellent"
    assert newest["images"] == ["a.jpg"]
    assert newest["profiles"]["first_name"] == "Ana"
    assert total == 4
    assert notifier.titles == ["Commentaire ajouté"]
    assert notifier.toasts[0].description == "Votre commentaire a été publié avec succès"


def test_add_comment_failure_rolls_back(store, sessions, settings, notifier):
    seed(store)
    comments = make(store, sessions, settings, notifier)

    async def scenario():
        async with comments.mounted():
            store.fail_next("insert", table="comments")
            ok = await comments.add_comment("Bof", 2)
            return ok, comments.total

    assert asyncio.run(scenario()) == (False, 3)
    assert notifier.toasts[-1].description == "Impossible d'ajouter le commentaire"


def test_add_comment_requires_session(store, settings, notifier):
    seed(store)
    comments = make(store, FakeSessionProvider(None), settings, notifier)

    async def scenario():
        async with comments.mounted():
            return comments.total, await comments.add_comment("Anonyme")

    assert asyncio.run(scenario()) == (3, False)
    assert store.count("insert") == 0


def test_profiles_failure_notifies(store, sessions, settings, notifier):
    seed(store)
    store.fail_next("select", table="profiles", times=3)
    comments = make(store, sessions, settings, notifier)

    async def scenario():
        async with comments.mounted():
            return comments.comments, comments.last_error

    rows, error = asyncio.run(scenario())
    assert rows == []
    assert error is not None
    assert notifier.toasts[-1].description == "Impossible de charger les commentaires"
