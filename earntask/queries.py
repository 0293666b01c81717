"""SELECTs shared by several routers. Column aliases match the serializers in models."""

WITHDRAWAL_SELECT = """
    SELECT w.*, u.name AS user_name, u.email AS user_email,
           u.username AS user_username, u.coins AS user_coins
    FROM withdrawals w
    JOIN users u ON u.id = w.user_id
"""

SUBMISSION_SELECT = """
    SELECT ts.*,
           t.type AS task_type, t.title AS task_title, t.description AS task_description,
           t.coins AS task_coins, t.reward_per_user AS task_reward_per_user,
           t.instagram_url AS task_instagram_url, t.youtube_url AS task_youtube_url,
           t.is_creator_task AS task_is_creator_task, t.created_by AS task_created_by,
           u.name AS user_name, u.username AS user_username, u.email AS user_email,
           u.coins AS user_coins,
           r.id AS reviewer_id, r.name AS reviewer_name, r.username AS reviewer_username
    FROM task_submissions ts
    JOIN tasks t ON t.id = ts.task_id
    JOIN users u ON u.id = ts.user_id
    LEFT JOIN users r ON r.id = ts.reviewed_by
"""

COIN_REQUEST_SELECT = """
    SELECT cr.*, c.name AS creator_name, c.username AS creator_username,
           c.email AS creator_email, c.creator_wallet AS creator_creator_wallet,
           r.id AS reviewer_id, r.name AS reviewer_name, r.username AS reviewer_username
    FROM creator_coin_requests cr
    JOIN users c ON c.id = cr.creator_id
    LEFT JOIN users r ON r.id = cr.reviewed_by
"""
