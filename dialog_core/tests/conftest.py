import os
import tempfile

# 日志在导入 dialog_core 时初始化，测试期间写到临时目录
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="dialog_core_logs_"))
