"""
Operator script: heal drifted follower mirrors, friend edges and community
member arrays, then check the counters of the users given on the command line.

    GOOGLE_CLOUD_PROJECT=my-project python examples/repair_relationships.py alice bob
"""
import asyncio
import logging
import sys
from functools import wraps

from firestore_social_graph import SocialGraph

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def async_decorator(f):
    """Decorator to allow calling an async function like a sync function"""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


@async_decorator
async def main(user_ids):
    graph = SocialGraph.from_env()

    followers = await graph.fix_followers_subcollection()
    friends = await graph.fix_friend_edges()
    communities = await graph.fix_community_members()

    for report in (followers, friends, communities):
        if not report.success:
            print(f"Repair failed: {report.error}")
            return 1

    inconsistent = [uid for uid in user_ids if not await graph.verify_followers_structure(uid)]
    if inconsistent:
        print("Counters still differ for:", ", ".join(inconsistent))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
