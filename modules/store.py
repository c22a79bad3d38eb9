# modules/store.py
import json, logging, os, tempfile, threading
from typing import Any, Callable, Dict, List, Optional

from modules.core import ApiError, generate_id, utcnow_iso

logger = logging.getLogger(__name__)

Post = Dict[str, Any]


class PostNotFound(ApiError):
    def __init__(self, post_id):
        super().__init__(404, "Post not found")
        self.post_id = post_id


# ======================
# record shape
# ======================
def _coerce_likes(raw: Post) -> int:
    value = raw.get("likes") or 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Post %s has invalid likes %r, resetting to 0", raw.get("id"), value)
        return 0


def normalize_post(raw: Any) -> Optional[Post]:
    if not isinstance(raw, dict) or raw.get("id") in (None, ""):
        return None

    images = raw.get("images")
    if isinstance(images, str):
        images = [images]
    if not images:
        # older records carry a single "image" url
        images = [raw["image"]] if raw.get("image") else []
    if not isinstance(images, list):
        images = []

    comments = raw.get("comments")
    if not isinstance(comments, list):
        comments = []
    kept = [c for c in comments if isinstance(c, dict)]
    if len(kept) != len(comments):
        logger.warning("Post %s: dropped %d malformed comment(s)", raw["id"], len(comments) - len(kept))

    # unknown keys survive a load/save round-trip
    post = dict(raw)
    post.update({
        "images": [i for i in images if isinstance(i, str)],
        "caption": raw.get("caption") or "",
        "price": raw.get("price", 0),
        "createdAt": raw.get("createdAt"),
        "likes": _coerce_likes(raw),
        "comments": kept,
    })
    return post


def _unique_id(taken) -> str:
    taken = {str(t) for t in taken}
    while True:
        new_id = generate_id()
        if new_id not in taken:
            return new_id


# ======================
# JSON file store
# ======================
class PostStore:
    def __init__(self, path: str):
        self.path = path
        # serializes read-modify-write inside this process only
        self._lock = threading.Lock()

    def load(self) -> List[Post]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.exception("Error reading posts from %s, starting with empty list", self.path)
            return []

        if not isinstance(data, list):
            logger.error("Posts file %s does not hold a list, starting with empty list", self.path)
            return []

        posts = []
        for raw in data:
            post = normalize_post(raw)
            if post is None:
                logger.warning("Skipping malformed post record in %s: %r", self.path, raw)
                continue
            posts.append(post)
        return posts

    def save(self, posts: List[Post]) -> bool:
        tmp_path = None
        try:
            data_dir = os.path.dirname(self.path)
            if data_dir:
                os.makedirs(data_dir, exist_ok=True)
            # unique temp name per writer, so concurrent processes never share one
            fd, tmp_path = tempfile.mkstemp(
                dir=data_dir or ".", prefix=os.path.basename(self.path) + ".", suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(posts, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
            return True
        except OSError:
            logger.exception("Error saving posts to %s", self.path)
            if tmp_path is not None:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            return False

    def _mutate(self, fn: Callable[[List[Post]], Any]):
        with self._lock:
            posts = self.load()
            result = fn(posts)
            self.save(posts)
            return result

    @staticmethod
    def _find(posts: List[Post], post_id) -> Post:
        key = str(post_id)
        for post in posts:
            if str(post["id"]) == key:
                return post
        raise PostNotFound(post_id)

    # ----------------------
    # reads
    # ----------------------
    def list_posts(self) -> List[Post]:
        return self.load()

    def get_post(self, post_id) -> Optional[Post]:
        try:
            return self._find(self.load(), post_id)
        except PostNotFound:
            return None

    def list_comments(self, post_id) -> List[Dict[str, Any]]:
        return self._find(self.load(), post_id)["comments"]

    # ----------------------
    # writes
    # ----------------------
    def add_post(self, images: List[str], caption: str, price: float) -> Post:
        def _do(posts):
            post = {
                "id": _unique_id(p["id"] for p in posts),
                "images": list(images),
                "caption": caption,
                "price": price,
                "createdAt": utcnow_iso(),
                "likes": 0,
                "comments": [],
            }
            posts.insert(0, post)
            return post

        post = self._mutate(_do)
        logger.info("Created post %s with %d image(s)", post["id"], len(post["images"]))
        return post

    def like_post(self, post_id) -> int:
        def _do(posts):
            post = self._find(posts, post_id)
            post["likes"] = post["likes"] + 1
            return post["likes"]

        likes = self._mutate(_do)
        logger.info("Post %s liked (%d)", post_id, likes)
        return likes

    def add_comment(self, post_id, text: str) -> Dict[str, Any]:
        def _do(posts):
            post = self._find(posts, post_id)
            comment = {
                "id": _unique_id(c.get("id") for c in post["comments"]),
                "text": text,
                "createdAt": utcnow_iso(),
            }
            post["comments"].append(comment)
            return comment

        comment = self._mutate(_do)
        logger.info("Comment %s added to post %s", comment["id"], post_id)
        return comment
