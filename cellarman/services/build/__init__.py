"""隔离构建：构建子进程与父进程之间的错误回传协议和运行器"""
