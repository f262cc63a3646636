# Services package.
#
#   repository        EntityRepository: active/all projections, pages, bulk ids
#   lifecycle         LifecycleManager: soft delete, recover, hard delete
#   bulk              id partitioning and per-id outcome aggregation
#   category_service  category CRUD + article/category reconciliation
#   article_service   Article reads, writes, and lifecycle endpoints
#   cascade           user delete/recover cascaded to the user's articles
#   user_service      User reads, registration, and profile updates
#   comment_service   comments on active articles
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
