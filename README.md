# nngraph

`nngraph` describes neural networks as computation graphs with symbolic
shapes. It then lowers them step by step to a flat list of operator entries
whose tensors are bound to a planned workspace or to external data.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## The pipeline

1. **Build** (`nngraph.context`). A `GraphBuilder` holds an `OpLib` of
   operators from `nngraph.ops`, registered by name with `register_op`. Each
   operator's `infer` works out its output `TensorMeta` from its inputs. If it
   cannot, it raises `OpError`, whose `kind` is an `OpErrorKind`.
   `GraphBuilder.build(nn, inputs)` launches a `NeuralNetwork` inside a
   `Context` and returns an `NNGraph`. The network adds nodes with
   `Context.call`, weights with `Context.load_external`, and sub-components
   with `Context.trap`. Node names are built from the scope path, for example
   `Ω.blk0:linear`. Repeated names get a suffix: `-2`, `-3` and so on. A failed
   call is raised as `NNError`, which carries the node's full name.
2. **Fix shapes** (`nngraph.nn_graph`). `NNGraph.lower(values, load)` puts
   integer values in place of the shape variables. Each internal edge becomes
   a `Tensor` over an `Internal` blob. For each external edge, `load` is asked
   for a `Tensor`, which must match the edge's data type and shape. The result
   is a `MemGraph` (`nngraph.mem`). Building it rewrites `split` and `concat`
   nodes as strided views of one blob and erases those nodes (they become
   `empty`).
3. **Plan memory** (`nngraph.analyze`).
   - `blob_lifetime` finds the node interval in which each internal blob is
     alive.
   - `to_actions` orders the allocations and releases.
   - `mem_range_map(graph, max_size, alignment)` packs the blobs into one
     aligned workspace, using a best-fit free list. It raises `MemoryError` if
     a blob does not fit.
   - `print_lifetime` draws the lifetimes as text bars.
4. **Bind** (`nngraph.exec`). `MemGraph.lower(internal, external)` maps every
   blob and every external item to a value of your choosing, such as an
   address. `ExecGraph.into_exec()` then returns one `Exec` per node, in
   topological order.

## Example

```python
from nngraph import ops
from nngraph.analyze import mem_range_map
from nngraph.context import GraphBuilder
from nngraph.layers import Linear
from nngraph.mem import Tensor
from nngraph.meta import F32, TensorMeta

builder = GraphBuilder().register_op("linear", ops.Linear())
graph = builder.build(Linear(F32, (8, 4), "w"), [TensorMeta.new(F32, ["n", 4])])

weights = {"w": Tensor.from_shape(F32, (8, 4), bytes(8 * 4 * 4))}
mem = graph.lower({"n": 3}, lambda name: weights[name])

plan = mem_range_map(mem, 1 << 20, 64)
entries = mem.lower(lambda blob: plan.map[blob].start, lambda data: data).into_exec()
for entry in entries:
    print(entry.node.name, entry.node.value.name)
```

## Building blocks

- `nngraph.dim`: `Dim` is a symbolic dimension with `+ - * /`, `variables()`,
  `substitute(values)` and `to_int()`. `make_eq` merges dimensions that must be
  equal. It returns `None` if they can never be equal. If equality depends on
  the variables, it keeps the check as a constraint, and `substitute` then
  returns `None` when the check fails.

  ```python
  from nngraph.dim import Dim

  a, b = Dim("a"), Dim("b")
  assert ((a + 1 - 2) * 3 / (b + 1)).substitute({"a": 8, "b": 6}) == 3
  ```

- `nngraph.arg`: `Arg` is an operator argument, tagged with an `ArgKind`:
  dimension, bool, int, float, string, array or dictionary.
- `nngraph.meta`: `DigitLayout` element types (`F32`, `U32`, `Q8_0`, …) and
  `TensorMeta`. For grouped types, `TensorMeta.new` counts the last axis in
  groups.
- `nngraph.topo`: `GraphTopo`, `TopoNode`, `NodeRef`, `Graph` and `Named`.
- `nngraph.ops`: the shape-inferring operators `SwiGLU`, `GeLU`, `AllReduce`,
  `Attention`, `Concat`, `Conv`, `Embedding`, `Linear`, `RmsNorm`,
  `LayerNorm`, `Rope` and `Split`.
- `nngraph.layers`: the network components `Activation`, `Embedding` (with
  `Table`), `Linear` and `Normalization` (with `RmsNorm` or `LayerNorm`
  items). They emit the operators `split`/`swiglu`, `gelu`, `embedding`,
  `linear`, `rms-norm` and `layer-norm`. Each of these must be registered
  under that name.
- `nngraph.distribution`: tensor parallelism. `Distribution(start, len, total)`
  is one shard, and `Distribution.MONO` is the whole model. `TPAction` pairs a
  weight type with a shard, and `TPTensor` is a weight item tagged with its
  action. The weight types `AttnQKV`, `FfnGateUp`, `ColumnTPWeight` and
  `RowTPWeight` each provide:
  - `split_shape`, which gives the shape of a shard;
  - `move_data`, which returns the shard's bytes from a contiguous weight
    `Tensor`.

  `Embedding.tensor_parallel`, `Normalization.tensor_parallel` and
  `Linear.parallel(action)` wrap a layer's weights for a shard.

## What the package does not do

- It has no ready-made attention, feed-forward, transformer-block, output-head
  or whole-model components, and no vision encoder. Networks of that kind are
  written by the user as `NeuralNetwork` classes built on the layers above.
- It does not read model files, and it has no command-line program.
- It does not execute anything. The result is the list of `Exec` entries with
  bound tensors. Running the kernels is left to the caller.