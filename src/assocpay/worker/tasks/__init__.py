# src/assocpay/worker/tasks/__init__.py

# 1. 导入这个子域的所有公开任务
from .notification import send_purchase_confirmation_task
# 2. 导入注册中心
from ..main import TASK_FUNCTIONS

# 3. 将自己注册进去
TASK_FUNCTIONS.extend([
    send_purchase_confirmation_task,
])
