from functools import wraps
import asyncio
import os

from firestore_social_graph import ConflictError, FirestoreDB, SocialGraph, SocialGraphSettings, User

GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT") or "demo-project"
EMULATOR_HOST = os.getenv("FIRESTORE_EMULATOR_HOST") or "localhost:8080"


def async_decorator(f):
    """Decorator to allow calling an async function like a sync function"""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


@async_decorator
async def main():
    # Runs against a local emulator: gcloud emulators firestore start
    settings = SocialGraphSettings(project_id=GOOGLE_CLOUD_PROJECT, emulator_host=EMULATOR_HOST)
    graph = SocialGraph(FirestoreDB.from_settings(settings), settings)

    for uid, name in (("alice", "Alice"), ("bob", "Bob")):
        if not await User.exists(uid):
            await User(id=uid, name=name).save()

    sent = await graph.friends.send_request("alice", "bob")
    print(sent)

    status = await graph.friends.get_friendship_status("bob", "alice")
    print("Bob sees:", status.status, status.request_id)

    if status.request_id:
        print(await graph.friends.accept_request(status.request_id, "alice", "bob"))
    print("Alice's friends:", await graph.friends.get_friends("alice"))

    print(await graph.follows.follow("bob", "alice"))
    print("Alice's followers:", await graph.follows.get_followers("alice"))

    try:
        await graph.statuses.add_custom_status("alice", "Gaming")
    except ConflictError as exc:
        print(exc.message)
    print("Alice is:", await graph.statuses.get_user_status("alice"))


main()
