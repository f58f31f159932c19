"""工具模块 - 配置、日志和格式化"""
