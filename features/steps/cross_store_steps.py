"""Step definitions for cross-store scenarios."""

import time
import uuid
from datetime import UTC, datetime, timedelta

from behave import given, then, when
from behave.runner import Context

from dockyard.exceptions import NotFoundError, UniqueConstraintError

USERS_TABLE = "users"


@given("a users table in the database")
def step_users_table(context: Context) -> None:
    context.db.create_table(USERS_TABLE)


@given('a user "{name}" with email "{email}"')
def step_user(context: Context, name: str, email: str) -> None:
    context.user_id = context.db.insert_user(USERS_TABLE, name, email)


@when("the user logs in")
def step_login(context: Context) -> None:
    context.values["session_key"] = f"session:user:{context.user_id}"
    context.cache.set(context.values["session_key"], "active", ttl=timedelta(hours=1))

    table = f"activity_logs_{uuid.uuid4().hex[:8]}"
    context.documents.create_table(table)
    context.add_cleanup(context.documents.delete_table, table)

    log_id = f"log-{time.time_ns()}"
    context.documents.put_item(
        table,
        {
            "id": log_id,
            "user_id": context.user_id,
            "action": "login",
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
    context.values["log_table"] = table
    context.values["log_id"] = log_id


@then('the session key for the user is "{value}"')
def step_session(context: Context, value: str) -> None:
    assert context.cache.get(context.values["session_key"]) == value


@then('the activity log records a "{action}" for the user')
def step_activity(context: Context, action: str) -> None:
    item = context.documents.get_item(context.values["log_table"], {"id": context.values["log_id"]})
    assert item["action"] == action
    assert item["user_id"] == context.user_id


@then("the database returns the user by id")
def step_db_user(context: Context) -> None:
    user = context.db.get_user(USERS_TABLE, context.user_id)
    assert user is not None
    assert user.id == context.user_id


def read_profile(context: Context) -> str:
    key = f"user:{context.user_id}"
    try:
        return context.cache.get(key)
    except NotFoundError:
        user = context.db.get_user(USERS_TABLE, context.user_id)
        value = f"{user.name}:{user.email}"
        context.cache.set(key, value, ttl=timedelta(minutes=5))
        return value


@when("the user profile is read through the cache")
def step_read_through(context: Context) -> None:
    context.cache.delete(f"user:{context.user_id}")
    context.values["profile"] = read_profile(context)


@then('the cached profile is "{expected}"')
def step_cached_profile(context: Context, expected: str) -> None:
    assert context.values["profile"] == expected
    assert context.cache.get(f"user:{context.user_id}") == expected


@then("the cached profile survives a database update")
def step_profile_survives(context: Context) -> None:
    user = context.db.get_user(USERS_TABLE, context.user_id)
    context.db.update_user(USERS_TABLE, context.user_id, "Renamed", user.email)
    assert read_profile(context) == context.values["profile"]


@when("two users with the same email are inserted in one transaction")
def step_duplicate_transaction(context: Context) -> None:
    def work(client) -> None:
        client.insert_user(USERS_TABLE, "First", "same@example.com")
        client.insert_user(USERS_TABLE, "Second", "same@example.com")

    try:
        context.db.execute_in_transaction(work)
    except UniqueConstraintError as e:
        context.values["error"] = e


@then("the insert fails with a uniqueness violation")
def step_uniqueness(context: Context) -> None:
    assert isinstance(context.values.get("error"), UniqueConstraintError)


@then("the users table is empty")
def step_empty(context: Context) -> None:
    assert context.db.count_users(USERS_TABLE) == 0


@when("an article is viewed {count:d} times")
def step_views(context: Context, count: int) -> None:
    context.values["counter"] = f"pageviews:article-123:{uuid.uuid4().hex[:8]}"
    for _ in range(count):
        context.cache.increment(context.values["counter"])


@then('the page view counter reads "{expected}"')
def step_counter(context: Context, expected: str) -> None:
    assert context.cache.get(context.values["counter"]) == expected
