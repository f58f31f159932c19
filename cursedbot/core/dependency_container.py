"""
依赖注入容器 - 按声明的依赖顺序创建机器人组件

机器人的所有组件（配置、解析器、会话工厂、通知器、命令分发器）都是单例，
由工厂函数创建，工厂函数的关键字参数就是它依赖的组件名称。
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set


@dataclass
class Registration:
    """依赖项注册信息"""
    factory: Callable[..., Any]
    dependencies: List[str] = field(default_factory=list)
    instance: Optional[Any] = None
    initialized: bool = False


class DependencyContainer:
    """
    依赖注入容器

    管理单例组件的创建和依赖关系，检测循环依赖和缺失依赖。
    """

    def __init__(self):
        self.logger = logging.getLogger("cursedbot.core.dependency")
        self._registrations: Dict[str, Registration] = {}
        self._resolving: Set[str] = set()

    def register_singleton(
        self,
        name: str,
        factory: Callable[..., Any],
        dependencies: Optional[List[str]] = None
    ) -> None:
        """
        注册单例依赖项

        Args:
            name: 依赖项名称
            factory: 创建实例的工厂函数
            dependencies: 依赖的其他组件名称列表

        Raises:
            ValueError: 名称已被注册
        """
        if name in self._registrations:
            raise ValueError(f"依赖项 '{name}' 已经注册")

        self._registrations[name] = Registration(factory=factory, dependencies=list(dependencies or []))
        self.logger.debug(f"📝 注册依赖项: {name}")

    def register_instance(self, name: str, instance: Any) -> None:
        """注册已经创建好的实例"""
        self.register_singleton(name, lambda: instance)

    def resolve(self, name: str) -> Any:
        """
        解析依赖项

        Args:
            name: 依赖项名称

        Returns:
            依赖项实例

        Raises:
            ValueError: 依赖项未注册
            RuntimeError: 循环依赖或初始化失败
        """
        registration = self._registrations.get(name)
        if registration is None:
            raise ValueError(f"依赖项 '{name}' 未注册")

        if registration.initialized:
            return registration.instance

        if name in self._resolving:
            raise RuntimeError(f"检测到循环依赖: {name}")

        self._resolving.add(name)
        try:
            kwargs = {dep: self.resolve(dep) for dep in registration.dependencies}
            instance = registration.factory(**kwargs)
        except (ValueError, RuntimeError):
            raise
        except Exception as e:
            self.logger.error(f"❌ 依赖项解析失败: {name} - {e}", exc_info=True)
            raise RuntimeError(f"依赖项 '{name}' 解析失败: {e}") from e
        finally:
            self._resolving.discard(name)

        registration.instance = instance
        registration.initialized = True
        self.logger.debug(f"✅ 依赖项解析完成: {name}")
        return instance

    def validate_dependencies(self) -> bool:
        """
        验证依赖关系（无缺失、无循环）

        Returns:
            True 如果依赖关系有效

        Raises:
            RuntimeError: 存在缺失依赖或循环依赖
        """
        visited: Set[str] = set()
        stack: Set[str] = set()

        def visit(node: str) -> None:
            if node in stack:
                raise RuntimeError(f"检测到循环依赖，涉及组件: {node}")
            if node in visited:
                return
            stack.add(node)
            for dep in self._registrations[node].dependencies:
                if dep not in self._registrations:
                    raise RuntimeError(f"依赖项 '{dep}' 未注册（被 '{node}' 依赖）")
                visit(dep)
            stack.discard(node)
            visited.add(node)

        for name in self._registrations:
            visit(name)

        self.logger.debug("✅ 依赖关系验证通过")
        return True
