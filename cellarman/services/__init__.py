"""服务层：隔离构建、安装编排"""
