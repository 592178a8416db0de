#!/usr/bin/env python3
"""
docmodel Demo - Shows model declaration, persistence and views.

This demo uses a temporary SQLite bucket and view sources written to a
temporary directory.
"""

import tempfile
from pathlib import Path

from docmodel import (
    Model,
    SqliteBucket,
    attribute,
    configure_design_documents,
    set_default_bucket,
    view,
)


class Post(Model):
    title = attribute()
    author = attribute()
    draft = attribute(default=False)
    tags = attribute(default=list)

    by_author = view()
    count_by_author = view()


def by_author(doc, meta):
    if doc.get("type") == "post" and not doc.get("draft"):
        yield doc["author"], doc["title"]


def count_by_author(doc, meta):
    if doc.get("type") == "post":
        yield doc["author"], 1


def write_views(root: Path) -> None:
    sources = {
        ("by_author", "map"): "function (doc) { if (doc.type == 'post' && !doc.draft) emit(doc.author, doc.title); }",
        ("count_by_author", "map"): "function (doc) { if (doc.type == 'post') emit(doc.author, 1); }",
        ("count_by_author", "reduce"): "_count",
    }
    for (name, kind), text in sources.items():
        path = root / "post" / name / f"{kind}.js"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)


def main():
    print("=" * 60)
    print("docmodel Demo - Models, Design Documents and Views")
    print("=" * 60)
    print()

    with tempfile.TemporaryDirectory() as data_dir:
        print(f"[Setup] Using data directory: {data_dir}")
        root = Path(data_dir)

        bucket = SqliteBucket(root / "blog.db")
        bucket.views.register("post", "by_author", by_author)
        bucket.views.register("post", "count_by_author", count_by_author, "_count")
        set_default_bucket(bucket)

        # 1. Design document
        print("\n[Step 1] Synchronizing design document...")
        write_views(root / "views")
        configure_design_documents(root / "views")
        print(f"  First sync:  {Post.ensure_design_document().value}")
        print(f"  Second sync: {Post.ensure_design_document().value}")

        # 2. Create
        print("\n[Step 2] Creating posts...")
        hello = Post.new(title="Hello", author="alice")
        print(f"  draft before create: {hello.draft}")
        hello.create()
        Post.new(title="Second thoughts", author="alice", tags=["meta"]).create()
        Post.new(title="Work in progress", author="bob", draft=True).create()
        print(f"  Created: {hello!r}")

        # 3. Find
        print("\n[Step 3] Loading by id...")
        found = Post.find(hello.id)
        print(f"  Found: {found!r} (cas={found.meta.cas})")
        print(f"  Missing: {Post.find_by_id('no-such-post')}")

        # 4. Update
        print("\n[Step 4] Updating...")
        found.update({"tags": ["greeting"]})
        print(f"  Reloaded original: {hello.reload()!r}")

        # 5. Views
        print("\n[Step 5] Querying views...")
        for post in Post.by_author(key="alice"):
            print(f"  alice wrote: {post.title} (row value {post.raw_value!r})")
        for row in Post.count_by_author(group=True):
            print(f"  {row.raw_key}: {row.raw_value} post(s)")

        # 6. Delete
        print("\n[Step 6] Deleting...")
        old_id = hello.id
        hello.delete()
        print(f"  id after delete: {hello.id}")
        print(f"  exists: {Post.exists_by_id(old_id)}")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
