"""
                        Services Module

Business logic behind the HTTP layer.

Services:
    - ordering: availability check, order assembly, transactional workflow
    - notifications: order status push channel (mock / Celery + Redis)
"""
