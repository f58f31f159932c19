"""核心模块 - 接口、异常和依赖注入容器"""
