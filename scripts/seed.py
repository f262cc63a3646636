"""Seed the content database with users, categories, articles and comments."""
import argparse
import asyncio
import random
import time

from app.database import Base, async_session, engine
from app.models import Article, Category, Comment, User, articles_categories
from app.security import hash_password

CATEGORIES = [
    ("python", "Python"), ("databases", "Databases"), ("devops", "DevOps"),
    ("frontend", "Frontend"), ("security", "Security"), ("testing", "Testing"),
    ("performance", "Performance"), ("architecture", "Architecture"),
]


async def seed(small: bool = False) -> None:
    num_users = 5 if small else 50
    articles_per_user = 4 if small else 40
    comments_per_article = 2 if small else 5

    print(f"Seeding: {num_users} users, {num_users * articles_per_user} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    password_hash = hash_password("password123")

    async with async_session() as session:
        categories = [Category(value=value, label=label) for value, label in CATEGORIES]
        session.add_all(categories)

        admin = User(name="Admin", email="admin@example.com", password_hash=password_hash, role="admin")
        users = [admin] + [
            User(
                name=f"User {i:03d}",
                email=f"user_{i:03d}@example.com",
                password_hash=password_hash,
                bio=f"I am test user number {i}.",
            )
            for i in range(num_users)
        ]
        session.add_all(users)
        await session.flush()
        print(f"  Created {len(categories)} categories and {len(users)} users")

        links = []
        comments = 0
        for user in users[1:]:
            for n in range(articles_per_user):
                article = Article(
                    title=f"{user.name} on {random.choice(CATEGORIES)[1]} #{n}",
                    content="Lorem ipsum dolor sit amet. " * random.randint(5, 40),
                    user_id=user.id,
                )
                session.add(article)
                await session.flush()
                for category in random.sample(categories, k=random.randint(0, 3)):
                    links.append({"article_id": article.id, "category_id": category.id})
                for _ in range(comments_per_article):
                    session.add(Comment(
                        content="Nice article!",
                        article_id=article.id,
                        user_id=random.choice(users).id,
                    ))
                    comments += 1
        if links:
            await session.execute(articles_categories.insert(), links)
        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"  Created {len(links)} category links and {comments} comments")
    print(f"Done in {elapsed:.1f}s")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the content database")
    parser.add_argument("--small", action="store_true", help="Seed a small dataset")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))
