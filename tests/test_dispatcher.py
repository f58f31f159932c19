"""
命令分发器测试

模拟完整的命令流程：点歌、跳过、停止、暂停/继续、音量，
以及会话结束事件与用户命令之间的竞态。
"""

import asyncio
import unittest
from unittest.mock import AsyncMock, Mock

from cursedbot.commands.dispatcher import CommandDispatcher, CommandIntent, CommandKind
from cursedbot.core.interfaces import PlaybackState
from cursedbot.playback.notifier import EventKind, QueueEvent
from tests.fakes import FakeResolver, FakeSessionFactory, RecordingNotifier, make_channel


class DispatcherTestCase(unittest.IsolatedAsyncioTestCase):
    """命令分发器测试基类"""

    def setUp(self):
        self.guild_id = 12345
        self.resolver = FakeResolver({"A": 180, "B": 200, "C": 240})
        self.factory = FakeSessionFactory()
        self.notifier = RecordingNotifier()
        self.dispatcher = CommandDispatcher(self.resolver, self.factory, self.notifier)

        self.text_channel = make_channel(11111)
        self.voice_channel = make_channel(22222)

    def intent(self, kind, guild_id=None, voice=True, channel=None, **args):
        return CommandIntent(
            kind=kind,
            guild_id=guild_id or self.guild_id,
            invoker_voice_channel=self.voice_channel if voice else None,
            reply_channel=channel or self.text_channel,
            args=args
        )

    async def play(self, query, **kwargs):
        return await self.dispatcher.execute(self.intent(CommandKind.PLAY, query=query, **kwargs))

    async def run_command(self, kind, **kwargs):
        return await self.dispatcher.execute(self.intent(kind, **kwargs))

    @property
    def queue(self):
        return self.dispatcher.registry.get(self.guild_id)


class TestPlaybackFlow(DispatcherTestCase):
    """完整播放流程测试"""

    async def test_play_skip_stop_scenario(self):
        """A(180) 播放 -> B(200) 入队 -> 跳过 -> 停止"""
        reply = await self.play("A")
        self.assertTrue(reply.success)
        self.assertEqual(reply.content, "🎶 开始播放: **A** - 3:00")
        self.assertEqual(self.queue.state, PlaybackState.PLAYING)
        self.assertEqual(self.notifier.events, [QueueEvent.song_started("A", 180)])

        reply = await self.play("B")
        self.assertEqual(reply.content, "➕ 已加入队列第 1 位: **B**")
        self.assertEqual([t.title for t in self.queue.tracks], ["A", "B"])
        self.assertEqual(self.notifier.events[-1], QueueEvent.song_added("B"))

        reply = await self.run_command(CommandKind.SKIP)
        self.assertEqual(reply.content, "⏭️ 已跳过: **A**")
        self.assertEqual([t.title for t in self.queue.tracks], ["B"])
        self.assertEqual(self.notifier.events[-1], QueueEvent.song_started("B", 200))

        reply = await self.run_command(CommandKind.STOP)
        self.assertEqual(reply.content, "⏹️ 已停止播放并清空队列！")
        self.assertNotIn(self.guild_id, self.dispatcher.registry)
        self.assertEqual(self.factory.released, [self.guild_id])
        self.assertTrue(all(session.closed for session in self.factory.sessions))

    async def test_pause_resume_commands(self):
        await self.play("A")

        reply = await self.run_command(CommandKind.PAUSE)
        self.assertEqual(reply.content, "⏸️ 已暂停播放！")
        self.assertEqual(self.queue.state, PlaybackState.PAUSED)

        reply = await self.run_command(CommandKind.PAUSE)
        self.assertFalse(reply.success)
        self.assertEqual(reply.content, "❌ 歌曲已经暂停了")

        reply = await self.run_command(CommandKind.RESUME)
        self.assertEqual(reply.content, "▶️ 继续播放！")

        reply = await self.run_command(CommandKind.RESUME)
        self.assertEqual(reply.content, "❌ 歌曲没有暂停")

    async def test_queue_command_renders_tracks(self):
        await self.play("A")
        await self.play("B")

        reply = await self.run_command(CommandKind.QUEUE)

        self.assertTrue(reply.success)
        self.assertIn("▶️ A - 3:00", reply.content)
        self.assertIn("1. B - 3:20", reply.content)

    async def test_volume_command_applies_to_session(self):
        await self.play("A")

        reply = await self.run_command(CommandKind.VOLUME, percent=50)

        self.assertEqual(reply.content, "🔊 音量已设置为 **50%**")
        self.assertEqual(self.queue.volume, 50)
        self.assertEqual(self.factory.last.volume, 50)

    async def test_skip_to_empty_keeps_idle_queue(self):
        """跳过最后一首后队列保持空闲，音量设置保留"""
        await self.play("A")
        await self.run_command(CommandKind.VOLUME, percent=40)

        await self.run_command(CommandKind.SKIP)
        self.assertEqual(self.queue.state, PlaybackState.IDLE)

        reply = await self.run_command(CommandKind.STOP)
        self.assertFalse(reply.success)

        await self.play("B")
        self.assertEqual(self.factory.last.volume, 40)

    async def test_guilds_are_independent(self):
        other_guild = 67890
        await self.play("A")
        await self.play("B", guild_id=other_guild)

        await self.run_command(CommandKind.STOP)

        self.assertNotIn(self.guild_id, self.dispatcher.registry)
        other = self.dispatcher.registry.get(other_guild)
        self.assertEqual(other.state, PlaybackState.PLAYING)
        self.assertEqual([t.title for t in other.tracks], ["B"])


class TestCommandErrors(DispatcherTestCase):
    """命令错误回复测试"""

    async def test_pause_on_fresh_guild(self):
        reply = await self.run_command(CommandKind.PAUSE)

        self.assertFalse(reply.success)
        self.assertEqual(reply.content, "❌ 队列是空的，当前没有正在播放的歌曲")
        self.assertEqual(len(self.dispatcher.registry), 0)

    async def test_play_without_voice_channel(self):
        reply = await self.play("A", voice=False)

        self.assertFalse(reply.success)
        self.assertEqual(reply.content, "❌ 请先加入一个语音频道")
        self.assertEqual(self.resolver.queries, [])
        self.assertEqual(len(self.dispatcher.registry), 0)

    async def test_empty_query(self):
        reply = await self.play("   ")

        self.assertFalse(reply.success)
        self.assertEqual(self.resolver.queries, [])

    async def test_volume_out_of_range_checked_before_lookup(self):
        """音量范围校验先于队列查找"""
        reply = await self.run_command(CommandKind.VOLUME, percent=150)

        self.assertFalse(reply.success)
        self.assertEqual(reply.content, "❌ 音量必须在 1 到 100 之间")

    async def test_volume_rejected_keeps_previous(self):
        await self.play("A")
        await self.run_command(CommandKind.VOLUME, percent=60)

        for percent in (0, 101):
            reply = await self.run_command(CommandKind.VOLUME, percent=percent)
            self.assertFalse(reply.success)
        self.assertEqual(self.queue.volume, 60)

    async def test_invalid_track_creates_no_queue(self):
        self.resolver.unknown.add("nothing")

        reply = await self.play("nothing")

        self.assertFalse(reply.success)
        self.assertEqual(reply.content, "❌ 无法播放 **nothing**: 没有找到结果")
        self.assertNotIn(self.guild_id, self.dispatcher.registry)

    async def test_session_failure_on_new_queue_discards_it(self):
        self.factory.fail_open = True

        reply = await self.play("A")

        self.assertFalse(reply.success)
        self.assertIn("voice connection refused", reply.content)
        self.assertNotIn(self.guild_id, self.dispatcher.registry)
        self.assertEqual(self.notifier.events[-1].kind, EventKind.ERROR)

    async def test_unexpected_exception_gives_generic_reply(self):
        resolver = Mock()
        resolver.resolve = AsyncMock(side_effect=RuntimeError("resolver exploded"))
        dispatcher = CommandDispatcher(resolver, self.factory, self.notifier)

        reply = await dispatcher.execute(self.intent(CommandKind.PLAY, query="A"))

        self.assertFalse(reply.success)
        self.assertEqual(reply.content, "❌ 执行命令时出错: resolver exploded")


class TestSessionEvents(DispatcherTestCase):
    """会话事件与命令竞态测试"""

    async def test_natural_drain_removes_queue(self):
        await self.play("A")
        await self.play("B")

        await self.factory.sessions[0].finish()
        self.assertEqual([t.title for t in self.queue.tracks], ["B"])
        self.assertEqual(self.notifier.events[-1], QueueEvent.song_started("B", 200))

        await self.factory.sessions[1].finish()
        self.assertNotIn(self.guild_id, self.dispatcher.registry)

    async def test_session_error_resets_and_removes_queue(self):
        await self.play("A")
        await self.play("B")

        await self.factory.last.finish(RuntimeError("stream broke"))

        self.assertNotIn(self.guild_id, self.dispatcher.registry)
        error_event = self.notifier.events[-1]
        self.assertEqual(error_event.kind, EventKind.ERROR)
        self.assertIn("stream broke", error_event.message)

    async def test_ended_event_after_skip_is_ignored(self):
        """被跳过的会话随后报告结束，不会再次推进队列"""
        await self.play("A")
        await self.play("B")
        await self.play("C")
        first = self.factory.sessions[0]

        await self.run_command(CommandKind.SKIP)
        await first.finish()

        self.assertEqual([t.title for t in self.queue.tracks], ["B", "C"])
        self.assertEqual(len(self.factory.sessions), 2)

    async def test_concurrent_skip_and_ended_advance_once(self):
        await self.play("A")
        await self.play("B")
        await self.play("C")
        first = self.factory.sessions[0]

        await asyncio.gather(
            self.run_command(CommandKind.SKIP),
            self.dispatcher.handle_session_finished(self.guild_id, first, None)
        )

        self.assertEqual([t.title for t in self.queue.tracks], ["B", "C"])
        self.assertEqual(self.queue.state, PlaybackState.PLAYING)

    async def test_event_for_unknown_guild_is_ignored(self):
        await self.dispatcher.handle_session_finished(99999, Mock(), None)
        self.assertEqual(len(self.dispatcher.registry), 0)

    async def test_notifications_follow_latest_channel(self):
        await self.play("A")
        await self.play("B")
        other_channel = make_channel(33333)

        await self.run_command(CommandKind.SKIP, channel=other_channel)

        self.assertIs(self.notifier.channels[-1], other_channel)


class TestVoiceRelease(DispatcherTestCase):
    """语音连接释放测试"""

    async def test_stop_after_skip_to_empty_leaves_voice(self):
        """跳过最后一首后，停止命令仍然断开语音连接"""
        await self.play("A")
        await self.run_command(CommandKind.SKIP)
        self.assertEqual(self.factory.released, [])

        reply = await self.run_command(CommandKind.STOP)

        self.assertFalse(reply.success)
        self.assertEqual(reply.content, "❌ 当前没有正在播放的音乐")
        self.assertEqual(self.factory.released, [self.guild_id])

    async def test_natural_drain_leaves_voice(self):
        """队列自然播放完毕后断开语音连接"""
        await self.play("A")

        await self.factory.last.finish()

        self.assertNotIn(self.guild_id, self.dispatcher.registry)
        self.assertEqual(self.factory.released, [self.guild_id])

        reply = await self.run_command(CommandKind.STOP)
        self.assertFalse(reply.success)
        self.assertEqual(self.factory.released, [self.guild_id, self.guild_id])

    async def test_session_error_leaves_voice(self):
        await self.play("A")

        await self.factory.last.finish(RuntimeError("stream broke"))

        self.assertEqual(self.factory.released, [self.guild_id])

    async def test_stop_on_fresh_guild_releases_stale_connection(self):
        reply = await self.run_command(CommandKind.STOP)

        self.assertFalse(reply.success)
        self.assertEqual(self.factory.released, [self.guild_id])
        self.assertEqual(len(self.dispatcher.registry), 0)

    async def test_stop_waits_for_inflight_play(self):
        """会话仍在打开时发出的停止命令，在点歌完成之后才执行"""
        self.factory.opening = asyncio.Event()
        self.factory.gate = asyncio.Event()

        play_task = asyncio.create_task(self.play("A"))
        await self.factory.opening.wait()
        stop_task = asyncio.create_task(self.run_command(CommandKind.STOP))
        await asyncio.sleep(0.01)

        self.assertFalse(stop_task.done())
        self.assertEqual(self.factory.released, [])

        self.factory.gate.set()
        play_reply = await play_task
        stop_reply = await stop_task

        self.assertTrue(play_reply.success)
        self.assertTrue(play_reply.content.startswith("🎶 开始播放"))
        self.assertTrue(stop_reply.success)
        self.assertEqual(stop_reply.content, "⏹️ 已停止播放并清空队列！")
        self.assertEqual(self.factory.released, [self.guild_id])
        self.assertTrue(self.factory.last.closed)
        self.assertEqual(len(self.dispatcher.registry), 0)

    async def test_long_collaborator_error_is_truncated(self):
        """协作者的超长错误信息在回复和通知中都被截断"""
        self.factory.fail_open = True
        self.factory.open_error_message = "x" * 5000

        reply = await self.play("A")

        self.assertFalse(reply.success)
        self.assertLess(len(reply.content), 300)
        self.assertLessEqual(len(self.notifier.events[-1].message), 200)


if __name__ == '__main__':
    unittest.main(verbosity=2)
