import asyncio
import unittest

from eloquent import AsyncCollection, ExecutorContext, InMemoryExecutor
from eloquent.exceptions import EloquentNotSupportedException, EloquentValidationException


class RecordingExecutor:
    """Executor returning the operation log it was called with."""

    def __init__(self):
        self.calls = []

    def __call__(self, context: ExecutorContext):
        self.calls.append(context)
        return [list(op) for op in context.operations]


class TestAsyncCollectionBuilder(unittest.IsolatedAsyncioTestCase):
    async def test_branches_are_isolated(self):
        executor = RecordingExecutor()
        base = AsyncCollection(executor)
        a = base.where("x", 1)
        b = base.where("y", 2)
        self.assertEqual(await a, [["where", "x", 1]])
        self.assertEqual(await b, [["where", "y", 2]])
        self.assertEqual(base.operations, ())

    async def test_chain_records_calls_in_order(self):
        query = (AsyncCollection(RecordingExecutor())
                 .where("age", ">=", 18)
                 .not_({"deleted": True})
                 .sort("name")
                 .slice(0, 10)
                 .first())
        self.assertEqual(query.operations, (
            ("where", "age", ">=", 18),
            ("not", {"deleted": True}),
            ("sort", "name"),
            ("slice", 0, 10),
            ("first",),
        ))

    async def test_unset_arguments_are_not_recorded(self):
        base = AsyncCollection(RecordingExecutor())
        self.assertEqual(base.sort().operations, (("sort",),))
        self.assertEqual(base.sort(direction="desc").operations, (("sort", None, "desc"),))
        self.assertEqual(base.paginate(2).operations, (("paginate", 2),))
        self.assertEqual(base.stringify().operations, (("stringify",),))

    async def test_single_execution(self):
        executor = RecordingExecutor()
        query = AsyncCollection(executor).where("a", 1)
        first = await query
        second = await query.run()
        self.assertEqual(first, second)
        self.assertEqual(len(executor.calls), 1)

    async def test_context(self):
        executor = RecordingExecutor()
        validators = {"$odd": lambda path, value: (lambda item: item[path] % 2 == 1)}
        await AsyncCollection(executor, validators).where("a", 1).first()
        context = executor.calls[0]
        self.assertIs(context.validators, validators)
        self.assertEqual(context.metadata.operation_count, 2)
        self.assertEqual(context.metadata.chain_depth, 2)
        self.assertIsNotNone(context.metadata.created_at)

    async def test_async_executor(self):
        async def executor(context):
            await asyncio.sleep(0)
            return len(context.operations)

        self.assertEqual(await AsyncCollection(executor).reverse().shuffle(), 2)

    async def test_rejection_is_memoized(self):
        calls = []

        def executor(context):
            calls.append(context)
            raise ValueError("backend down")

        query = AsyncCollection(executor).where("a", 1)
        with self.assertRaises(ValueError) as first:
            await query
        with self.assertRaises(ValueError) as second:
            await query
        self.assertIs(first.exception, second.exception)
        self.assertEqual(len(calls), 1)

    async def test_async_rejection_propagates_unmodified(self):
        error = KeyError("missing")

        async def executor(context):
            raise error

        with self.assertRaises(KeyError) as ctx:
            await AsyncCollection(executor)
        self.assertIs(ctx.exception, error)

    async def test_cancelled_awaiter_does_not_cancel_execution(self):
        calls = []

        async def executor(context):
            calls.append(context)
            await asyncio.sleep(0)
            return "done"

        query = AsyncCollection(executor).where("a", 1)
        waiter = asyncio.ensure_future(query.run())
        await asyncio.sleep(0)
        waiter.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await waiter
        self.assertEqual(await query, "done")
        self.assertEqual(await query, "done")
        self.assertEqual(len(calls), 1)

    async def test_timeout_on_one_awaiter(self):
        release = asyncio.Event()

        async def executor(context):
            await release.wait()
            return 42

        query = AsyncCollection(executor)
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(query.run(), timeout=0.01)
        release.set()
        self.assertEqual(await query, 42)

    async def test_concurrent_awaits(self):
        executor = RecordingExecutor()
        base = AsyncCollection(executor)
        results = await asyncio.gather(base.where("a", 1), base.where("b", 2))
        self.assertEqual(results, [[["where", "a", 1]], [["where", "b", 2]]])

    def test_explain(self):
        query = AsyncCollection(RecordingExecutor()).where("a", 1).first()
        self.assertEqual(query.explain(), "ops:where -> first")
        plan = query.explain("json")
        self.assertEqual(plan["executor"], "RecordingExecutor")
        self.assertEqual(plan["operations"][0], {"op": "where", "args": ["'a'", "1"]})
        self.assertEqual(AsyncCollection(RecordingExecutor()).explain(), "ops: <none>")

    def test_executor_must_be_callable(self):
        with self.assertRaises(EloquentValidationException):
            AsyncCollection(None)


class TestInMemoryExecutor(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.items = [
            {"id": 1, "status": "active", "age": 40},
            {"id": 2, "status": "inactive", "age": 15},
            {"id": 3, "status": "active", "age": 22},
        ]
        self.collection = AsyncCollection(InMemoryExecutor(self.items))

    async def test_where(self):
        result = await self.collection.where("status", "active")
        self.assertEqual([item["id"] for item in result], [1, 3])

    async def test_terminal_operations(self):
        self.assertEqual((await self.collection.where("status", "active").sort("age").first())["id"], 3)
        self.assertEqual(await self.collection.sum("age"), 77)
        self.assertEqual(await self.collection.count({"status": "active"}), 2)
        self.assertEqual(await self.collection.count_by("status"), {"active": 2, "inactive": 1})
        self.assertEqual(await self.collection.not_({"status": "active"}).map(lambda x: x["id"]), [2])

    async def test_grouping_returns_plain_data(self):
        groups = await self.collection.group_by("status")
        self.assertEqual(groups["active"], [self.items[0], self.items[2]])
        self.assertIsInstance(groups["active"], list)
        page = await self.collection.paginate(1, 2)
        self.assertEqual([item["id"] for item in page["items"]], [1, 2])
        self.assertEqual(page["next"], 2)

    async def test_mutations_do_not_touch_source(self):
        result = await self.collection.update({"id": 1}, {"status": "banned"}).delete({"id": 2})
        self.assertEqual([item["status"] for item in result], ["banned", "active"])
        self.assertEqual(self.items[0]["status"], "active")
        self.assertEqual(len(self.items), 3)

    async def test_custom_validators(self):
        validators = {"$odd": lambda path, value: (lambda item: (item[path] % 2 == 1) == value)}
        collection = AsyncCollection(InMemoryExecutor(self.items), validators)
        result = await collection.filter({"id": {"$odd": True}})
        self.assertEqual([item["id"] for item in result], [1, 3])

    async def test_macro_operation(self):
        result = await self.collection.macro("ids", lambda self: self.map(lambda x: x["id"]))
        self.assertEqual(result, self.items)

    async def test_operation_after_terminal_fails(self):
        with self.assertRaises(EloquentValidationException):
            await self.collection.first().where("id", 1)

    async def test_unsupported_operation(self):
        context = ExecutorContext(operations=(("teleport",),))
        with self.assertRaises(EloquentNotSupportedException):
            InMemoryExecutor(self.items)(context)


if __name__ == '__main__':
    unittest.main()
