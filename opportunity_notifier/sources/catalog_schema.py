"""Read-only table definitions for the upstream catalog.

Only the columns this service reads are declared. Database column names
follow the catalog's own camelCase naming; ``key=`` gives each column a
Python attribute name.
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, MetaData, String, Table

catalog_metadata = MetaData()

sponsors = Table(
    "Sponsors",
    catalog_metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255)),
)

bounties = Table(
    "Bounties",
    catalog_metadata,
    Column("id", String(64), primary_key=True),
    Column("title", String(255)),
    Column("slug", String(255)),
    Column("deadline", DateTime),
    Column("status", String(32)),
    Column("token", String(32)),
    Column("rewardAmount", Float, key="reward_amount"),
    Column("usdValue", Float, key="usd_value"),
    Column("sponsorId", String(64), key="sponsor_id"),
    Column("skills", JSON),
    Column("type", String(32)),
    Column("region", String(255)),
    Column("compensationType", String(32), key="compensation_type"),
    Column("minRewardAsk", Float, key="min_reward_ask"),
    Column("maxRewardAsk", Float, key="max_reward_ask"),
    Column("isPublished", Boolean, key="is_published"),
    Column("isActive", Boolean, key="is_active"),
    Column("publishedAt", DateTime, key="published_at"),
    Column("eligibility", JSON),
)

grants = Table(
    "Grants",
    catalog_metadata,
    Column("id", String(64), primary_key=True),
    Column("title", String(255)),
    Column("slug", String(255)),
    Column("token", String(32)),
    Column("minReward", Float, key="min_reward"),
    Column("maxReward", Float, key="max_reward"),
    Column("sponsorId", String(64), key="sponsor_id"),
    Column("skills", JSON),
    Column("region", String(255)),
    Column("status", String(32)),
    Column("isPublished", Boolean, key="is_published"),
    Column("isActive", Boolean, key="is_active"),
    Column("createdAt", DateTime, key="created_at"),
)

users = Table(
    "User",
    catalog_metadata,
    Column("id", String(64), primary_key=True),
    Column("location", String(255)),
)

submissions = Table(
    "Submission",
    catalog_metadata,
    Column("id", String(64), primary_key=True),
    Column("userId", String(64), key="user_id"),
    Column("listingId", String(64), key="listing_id"),
)
