"""领域核心：选项模型、依赖图展开、keg、锁、安装回执"""
